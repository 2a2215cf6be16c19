#!/usr/bin/env python3
"""Connect to a CST device and print supply currents as they arrive.

Usage:
    python examples/ws_client.py 192.168.1.50
"""

import sys

from cstlog.codec import TelemetryEvent
from cstlog.decoder import decode_fields
from cstlog.session import current_millis
from cstlog.transport import WebSocketTransport

address = sys.argv[1] if len(sys.argv) > 1 else "localhost:8080"
transport = WebSocketTransport.for_address(address)
transport.write(f"init:[{current_millis()}]")

try:
    while True:
        text = transport.read()
        if text is None:
            continue
        event = TelemetryEvent(current_millis(), text)
        if not event.has_type("sm"):
            continue
        for name, value in decode_fields(event):
            if name.endswith("Supply Current"):
                print(f"{name}={value}")
except KeyboardInterrupt:
    pass
finally:
    transport.close()
