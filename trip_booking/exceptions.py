from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, PermissionDenied, ValidationError

__all__ = [
    'Conflict',
    'InsufficientFunds',
    'NotFound',
    'PermissionDenied',
    'ValidationError',
]


class InsufficientFunds(APIException):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = 'Insufficient wallet balance.'
    default_code = 'insufficient_funds'


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Request conflicts with the current state of the resource.'
    default_code = 'conflict'
