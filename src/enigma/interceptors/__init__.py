"""Built-in request and response interceptors."""

from enigma.interceptors.request import delta_request_interceptor
from enigma.interceptors.response import (
    api_response_interceptor,
    delta_response_interceptor,
    error_response_interceptor,
    out_param_response_interceptor,
    patch_value,
    result_response_interceptor,
)

__all__ = [
    "api_response_interceptor",
    "delta_request_interceptor",
    "delta_response_interceptor",
    "error_response_interceptor",
    "out_param_response_interceptor",
    "patch_value",
    "result_response_interceptor",
]
