"""
viewer_core: session and polling core of the Microscope Viewer
===============================================================
Architecture: one background poll thread, commands from any thread.

  constants.py    → Version, intervals, retry budgets, endpoints, caps
  config.py       → Paths, logging, config load/save, helpers
  http_client.py  → HTTP session with pooling + connect retry
  errors.py       → Failure taxonomy (AuthFailure, RequestFailure, ...)
  codec.py        → Tolerant JSON decoding, timestamps
  models.py       → Credentials, ImageRecord, ResultRecord, ReconciledUpdate
  analysis.py     → Histogram statistics and display bands
  storage.py      → SecureStore (Fernet-encrypted, best-effort)
  session.py      → SessionManager (login, refresh, validate, logout)
  api.py          → ImageFetcher / ResultFetcher (bounded retry)
  history.py      → HistoryStore (newest first, capped at 50)
  state.py        → ViewerState dataclass (single source of truth)
  poller.py       → PollOrchestrator (poll loop state machine)
  app.py          → ViewerApp (command surface for the UI)
  runner.py       → main() console front end
"""
