# src/launchcore/config/const.py
from __future__ import annotations

# ЖЁСТКИЕ значения по умолчанию (переопределяются через ENV/.env, см. services/settings.py)
ENV_PREFIX: str = "LAUNCHCORE_"

LOG_FILE_NAME: str = "launchcore.log"
LOG_LEVEL: str = "INFO"
LOG_MAX_BYTES: int = 5_000_000
LOG_BACKUP_COUNT: int = 3

# сколько ждать после SIGTERM, прежде чем слать SIGKILL
SIGTERM_TIMEOUT_S: float = 5.0
# общий лимит на завершение всего запуска после shutdown
SHUTDOWN_GRACE_S: float = 10.0

# анти-crash для respawn (как в менеджере процессов)
RESPAWN_BACKOFF_MAX_S: float = 5.0

# порядок записи переменных обработчиками в пределах одного такта: "last" | "first"
HANDLER_WRITE_POLICY: str = "last"
