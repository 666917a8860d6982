"""
Unit tests for the error taxonomy.
"""

import pytest
from botocore.exceptions import ClientError

from echosoul.utils.errors import DependencyError, ErrorKind, classify_client_error


@pytest.mark.parametrize('code, kind', [
    ('AccessDeniedException', ErrorKind.AUTH),
    ('ThrottlingException', ErrorKind.RATE_LIMIT),
    ('ValidationException', ErrorKind.CONFIG),
    ('ResourceNotFoundException', ErrorKind.NOT_FOUND),
    ('InternalServerException', ErrorKind.TRANSIENT),
])
def test_classify_client_error(code, kind):
    error = ClientError({'Error': {'Code': code, 'Message': 'boom'}}, 'InvokeModel')
    assert classify_client_error(error) == kind


def test_only_transient_and_rate_limit_are_retryable():
    assert DependencyError('x').retryable
    assert DependencyError('x', kind=ErrorKind.RATE_LIMIT).retryable
    assert not DependencyError('x', kind=ErrorKind.AUTH).retryable
    assert not DependencyError('x', kind=ErrorKind.NOT_FOUND).retryable
