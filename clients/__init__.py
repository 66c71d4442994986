"""
HTTP clients for external systems.

Modules:
    issue_tracker: Issue tracker REST v3 client (search, create, link) and ADF helpers
    graph: Microsoft Graph client for planner, to-do, calendar and mail

Usage:
    from clients.issue_tracker import IssueTrackerClient, build_description
    from clients.graph import GraphClient
"""

__all__ = [
    "IssueTrackerClient",
    "DescriptionSection",
    "build_description",
    "GraphClient",
]
