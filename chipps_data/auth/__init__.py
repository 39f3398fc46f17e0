"""Authentication for the target Salesforce org"""
from .oauth import SalesforceAuth, AuthConfig, AuthenticationError, ConnectionUnavailableError

__all__ = ['SalesforceAuth', 'AuthConfig', 'AuthenticationError', 'ConnectionUnavailableError']
