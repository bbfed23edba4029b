"""Cross-cutting helpers: validation, time and locking"""
