import os

# Bind to the port provided via the PORT environment variable, defaulting to
# 5000.
bind = f"0.0.0.0:{os.getenv('PORT', '5000')}"

# Requests are short and synchronous; PDF exports block one worker while
# they render, so run a few and allow slow exports to finish.
worker_class = "sync"
workers = int(os.getenv("WEB_CONCURRENCY", "2"))
timeout = 120
