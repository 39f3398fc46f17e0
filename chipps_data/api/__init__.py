"""Salesforce API client"""
from .client import SalesforceClient, SalesforceAPIError, QueryResult

__all__ = ['SalesforceClient', 'SalesforceAPIError', 'QueryResult']
