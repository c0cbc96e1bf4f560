"""
Structured logging for the retrieval engine.
Index mutations, persistence and context assembly are logged as
operation/status/details records.
"""

import logging
from typing import Any, Dict, List

class StructuredLogger:
    """Structured logger for index, persistence and retrieval operations."""

    def __init__(self, name: str = "semantic_retrieval"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation. Failed operations are logged at warning level."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_vector_operation(self, operation: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector index operation."""
        self.log_operation(f"vector.{operation}", status, details)

    def log_persistence_operation(self, operation: str, path: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a read/write of the persisted index image."""
        log_details = {"path": path}
        if details:
            log_details.update(details)

        self.log_operation(f"persistence.{operation}", status, log_details)

    def log_retrieval_operation(self, operation: str, query: str = None, details: Dict[str, Any] = None, status: str = "success"):
        """Log a retrieval service operation. Query text is truncated."""
        log_details = {}
        if query is not None:
            log_details["query"] = sanitize_payload(query)
        if details:
            log_details.update(details)

        self.log_operation(f"retrieval.{operation}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, max_length: int = 100, redact_fields: List[str] = None) -> Any:
    """Truncate long strings and redact named fields before they reach the log."""
    if redact_fields is None:
        redact_fields = ['api_key', 'authorization', 'secret', 'password']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if k.lower() in redact_fields:
                sanitized[k] = "[REDACTED]"
            else:
                sanitized[k] = sanitize_payload(v, max_length, redact_fields)
        return sanitized
    elif isinstance(payload, str):
        return payload[:max_length] + "..." if len(payload) > max_length else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, max_length, redact_fields) for item in payload]
    else:
        return payload
