"""
Flower OSC Bridge - WebSocket to OSC event relay.

This module runs next to the audio/lighting software and:
- Accepts WebSocket connections from visual clients
- Opens one OSC receive/send endpoint pair per connection
- Relays events in both directions, best effort
"""

__version__ = "1.0.0"
