"""
Tuition slot scheduling and booking engine.

The FastAPI application lives in `tuition_scheduler.main:app`; run it with
`scripts/serve.py` or any ASGI server.
"""
