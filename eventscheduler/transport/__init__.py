from .base import Transport, TransportResponse
from .http import HttpxTransport
