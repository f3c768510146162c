"""Structured logging utility for the twinmarks index."""

import logging
import os
from typing import Any, Dict, List

# Fields whose values are never written to the log verbatim
REDACTED_FIELDS = ['vector', 'semanticVector', 'semantic_vector', 'api_key', 'image_data']


class StructuredLogger:
    """Structured logger for store, oracle and clustering operations."""

    def __init__(self, name: str = "twinmarks"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        if status in ("failed", "error"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_store_operation(self, operation: str, url: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a record store operation."""
        log_details = {"url": url}
        if details:
            log_details.update(details)

        self.log_operation(f"store.{operation}", status, log_details)

    def log_oracle_call(self, kind: str, model: str, status: str = "success", details: Dict[str, Any] = None):
        """Log an embedding or generation call to the oracle."""
        log_details = {"model": model}
        if details:
            log_details.update(details)

        self.log_operation(f"oracle.{kind}", status, log_details)

    def log_cluster_run(self, requested_k: int, actual_k: int, record_count: int, details: Dict[str, Any] = None):
        """Log a k-means partitioning run."""
        log_details = {
            "requested_k": requested_k,
            "actual_k": actual_k,
            "record_count": record_count
        }
        if details:
            log_details.update(details)

        self.log_operation("clustering.partition", "success", log_details)

    def log_import_skip(self, index: int, reason: str, url: str = None):
        """Log a snapshot entry skipped during import."""
        log_details = {"index": index, "reason": reason}
        if url:
            log_details["url"] = url

        self.log_operation("store.import_skip", "skipped", log_details)

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


def sanitize_payload(payload: Any, redacted_fields: List[str] = None) -> Any:
    """Sanitize payloads for logging: drop vectors, truncate long strings."""
    if redacted_fields is None:
        redacted_fields = REDACTED_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if k in redacted_fields:
                sanitized[k] = f"[{len(v)} values]" if isinstance(v, (list, tuple)) else "[REDACTED]"
            else:
                sanitized[k] = sanitize_payload(v, redacted_fields)
        return sanitized
    elif isinstance(payload, str):
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        if len(payload) > 20:
            return [sanitize_payload(item, redacted_fields) for item in payload[:20]] + [f"... {len(payload) - 20} more"]
        return [sanitize_payload(item, redacted_fields) for item in payload]
    else:
        return payload


# Global logger instance
logger = StructuredLogger()
