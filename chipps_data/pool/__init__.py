"""Bounded-concurrency pool for upload tasks"""
from .upload_pool import UploadPool, PoolObserver, PoolClosedError, PoolStateError, error_message

__all__ = ['UploadPool', 'PoolObserver', 'PoolClosedError', 'PoolStateError', 'error_message']
