"""Cross-cutting helpers: logging and run-level errors."""
