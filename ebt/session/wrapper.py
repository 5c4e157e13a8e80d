"""Test wrapper protocol.

Test files are plain Espruino JavaScript. They report their verdict either
by assigning the ``result`` global (plus an optional ``resultReason``) or by
calling ``__testDone(ok, reason)``, a one-shot completion channel whose
first write wins.

The wrapper surrounds the source with a prologue that declares the channel
and an epilogue that polls it against a deadline taken from the device's
own clock. Whatever happens, the epilogue prints exactly one JSON line
tagged with :data:`SENTINEL`::

    {"__espruino_test__":true,"file":"test_x.js","pass":true,"duration_ms":12,"reason":null}

The host finds that line by substring search, so any amount of device
chatter around it is harmless.
"""

from __future__ import annotations

import json

from ebt.session.models import WrappedPayload

SENTINEL = "__espruino_test__"
READY_MARKER = "__RUNNER_READY__"
POLL_INTERVAL_MS = 50

# Node.js has no print(); Espruino must keep its builtin.
_HOST_SHIM = (
    "if (typeof print !== 'function') {"
    " globalThis.print = function (s) { console.log(s); }; }\n"
)

_PROLOGUE = """\
var __TEST_TIMEOUT_SEC = {timeout};
var result = undefined;
var resultReason = undefined;
var __testOutcome = null;
function __testDone(ok, reason) {{
  if (__testOutcome) return false;
  __testOutcome = {{ok: !!ok, reason: (reason === undefined ? null : reason)}};
  return true;
}}
"""

_EPILOGUE = """
(function () {{
  function now() {{ return (typeof getTime === 'function') ? getTime() : Date.now() / 1000; }}
  var t0 = now();
  var deadline = t0 + (__TEST_TIMEOUT_SEC || 5);
  function report(ok, reason) {{
    var out = {{{sentinel}: true, file: {file}, pass: !!ok,
      duration_ms: Math.round((now() - t0) * 1000), reason: reason || null}};
    print(JSON.stringify(out));
  }}
  (function wait() {{
    if (!__testOutcome && typeof result !== 'undefined') {{
      __testDone(result, (typeof resultReason !== 'undefined') ? resultReason : null);
    }}
    if (__testOutcome) return report(__testOutcome.ok, __testOutcome.reason);
    if (now() < deadline) return setTimeout(wait, {poll});
    __testDone(false, 'timeout');
    report(false, 'timeout');
  }})();
}})();
"""


def device_timeout_seconds(timeout_ms: int) -> int:
    """Device-side budget for a host budget of *timeout_ms* (at least 1 s)."""
    return max(1, round(timeout_ms / 1000))


def compose_wrapped_test(
    test_id: str,
    source: str,
    timeout_seconds: int,
    *,
    host_shim: bool = False,
) -> WrappedPayload:
    """Instrument *source* so it always self-reports one sentinel line.

    Args:
        test_id: Identifier echoed back in the record (the file name).
        source: Raw test source.
        timeout_seconds: Device-side deadline, clamped to at least 1.
        host_shim: Prepend a ``print`` shim for running under Node.js.
    """
    timeout = max(1, int(timeout_seconds))
    text = "".join([
        _HOST_SHIM if host_shim else "",
        _PROLOGUE.format(timeout=timeout),
        source,
        "" if source.endswith("\n") else "\n",
        _EPILOGUE.format(
            sentinel=SENTINEL,
            file=json.dumps(test_id),
            poll=POLL_INTERVAL_MS,
        ),
    ])
    return WrappedPayload(
        test_id=test_id,
        source_text=source,
        timeout_seconds=timeout,
        text=text,
    )


def compose_ready_probe() -> str:
    """Code for the warmup session that soaks up boot banners."""
    return f'print("{READY_MARKER}")'
