"""Gateway core: sessions, tools, chat pipeline, portfolio and errors."""
