"""Migration services: importer, retry, progress, summary, notifier."""
