"""
Версии схем сообщений: конверт задачи в очереди и события WS/bridge.
"""

from __future__ import annotations

WS_SCHEMA_VERSION = "v1"
QUEUE_SCHEMA_VERSION = "v1"
