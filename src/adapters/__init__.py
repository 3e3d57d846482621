"""Host adapters: SQLite state store, Chromium history and the message channel."""
