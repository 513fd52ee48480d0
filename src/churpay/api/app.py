"""ASGI entrypoint: `uvicorn churpay.api.app:app` (install the `server` extra).

Importing this module reads the PayFast configuration, so a deployment with
missing merchant credentials fails at boot rather than on the first request.
"""

from churpay.api.factory import create_app

app = create_app()
