"""
Authentication application.

Identity collaborator for the chat core. It owns the user record and
answers three questions for other apps:

    - who is this id? (UserDirectory.lookup_user -> UserSummary)
    - who matches this text? (UserDirectory.search_users)
    - whose token is this? (TokenService.verify_access_token / authenticate)

Usage:
    from authentication.services import TokenService, UserDirectory
    from authentication.types import UserRef, UserSummary
"""
