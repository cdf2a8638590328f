# backends.py
# Adapters for the external generation backends.
#
# Everything here blocks, and everything here is bounded by a timeout: an
# expired timeout raises CapabilityTimeout after the connection or child
# process has been released.

import subprocess
from typing import Any

import httpx

from video_agent.errors import CapabilityExecutionError, CapabilityTimeout


class HttpBackend:
    """JSON-over-HTTP generation backend (script, image or voice service)."""

    def __init__(self, endpoint: str, timeout: float = 60.0, client: httpx.Client | None = None) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._client = client

    def generate(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            if self._client is not None:
                response = self._client.post(self.endpoint, json=payload, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.endpoint, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise CapabilityTimeout(f"POST {self.endpoint} timed out after {self.timeout:g}s") from exc
        except httpx.HTTPStatusError as exc:
            raise CapabilityExecutionError(
                f"POST {self.endpoint} → {exc.response.status_code}: {exc.response.text[:300]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise CapabilityExecutionError(f"POST {self.endpoint} failed: {exc}") from exc

        if not isinstance(body, dict):
            raise CapabilityExecutionError(f"POST {self.endpoint} returned non-object JSON.")
        return body


def run_command(args: list[str], timeout: float, cwd: str | None = None) -> str:
    """
    Run a render/processing command and return its combined output.

    subprocess.run kills the child when the timeout expires.
    """
    try:
        completed = subprocess.run(
            args,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise CapabilityTimeout(f"Command {args[0]!r} timed out after {timeout:g}s") from exc
    except OSError as exc:
        raise CapabilityExecutionError(f"Command {args[0]!r} could not start: {exc}") from exc

    output = (completed.stdout or "") + (completed.stderr or "")
    if completed.returncode != 0:
        raise CapabilityExecutionError(
            f"Command {args[0]!r} exited with {completed.returncode}: {output.strip()[-500:]}"
        )
    return output
