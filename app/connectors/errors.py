"""
Extraction gateway exceptions.
"""

from __future__ import annotations


class GatewayError(RuntimeError):
    """
    Transient failure talking to an extraction backend. Never changes job state.
    """


class PlatformQuotaError(RuntimeError):
    """
    The platform API rejected the request for quota or authorization reasons.
    Terminal for the job: falling back would only hide the misconfiguration.
    """


class PlatformContentError(RuntimeError):
    """
    The platform API could not produce content for this URL (not found,
    private, malformed response). The job-runner fallback may still succeed.
    """
