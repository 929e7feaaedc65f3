"""Signup gateway for the ImageEngine control panel.

To build the Flask app:
    from signup_gateway.flask_app import create_app

To use the CoreAPI client library:
    from signup_gateway.core.coreapi import CoreAPIClient, TokenCache, UserService
"""
# Note: We don't import flask_app by default to avoid the Flask dependency
# for callers that only use signup_gateway.core.coreapi
