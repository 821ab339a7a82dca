"""
coursedesk: command line client for the course-management REST API.
"""
