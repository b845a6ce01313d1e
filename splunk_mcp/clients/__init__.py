# Upstream HTTP clients package
from .base import UpstreamClient
from .signalfx_client import SignalFxClient
from .splunk_client import SplunkClient

__all__ = ["UpstreamClient", "SplunkClient", "SignalFxClient"]
