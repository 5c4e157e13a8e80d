"""
Embedded Board Tester.

Flashes Espruino firmware onto ESP32-family boards and runs JavaScript test
suites on them through the Espruino CLI, recovering a pass/fail verdict per
test even when the device hangs.
"""

__version__ = "0.1.0"
