from __future__ import annotations

import json
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any


class TelegramError(RuntimeError):
    pass


class TelegramRateLimited(TelegramError):
    pass


@dataclass(frozen=True)
class TelegramClient:
    bot_token: str
    base_url: str = "https://api.telegram.org"
    timeout_seconds: int = 15

    def request_json(self, method: str, payload: dict[str, Any], *, retries: int = 2) -> dict[str, Any]:
        url = f"{self.base_url.rstrip('/')}/bot{urllib.parse.quote(self.bot_token, safe=':')}/{method}"
        body = json.dumps(payload).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, data=body, method="POST")
                req.add_header("Content-Type", "application/json")
                req.add_header("Accept", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                try:
                    j = json.loads(raw.decode("utf-8"))
                except ValueError as e:
                    raise TelegramError(f"Invalid JSON from Telegram ({method})") from e
                if not j.get("ok"):
                    raise TelegramError(j.get("description") or f"Telegram {method} failed")
                return j
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = TelegramRateLimited("Rate limited (429)")
                    continue
                try:
                    detail = json.loads(e.read().decode("utf-8", errors="ignore")).get("description") or ""
                except ValueError:
                    detail = ""
                raise TelegramError(f"HTTP {e.code} from Telegram: {detail[:300]}") from e
            except urllib.error.URLError as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise TelegramError(f"Telegram request failed after retries: {last_err}")

    def send_message(self, chat_id: str, text: str) -> dict[str, Any]:
        j = self.request_json("sendMessage", {"chat_id": chat_id, "text": text})
        result = j.get("result") or {}
        return result if isinstance(result, dict) else {}
