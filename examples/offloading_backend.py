"""Example backend that hands report generation to a slow service.

Run the backend, a slow service and the proxy in front of the backend:

    python examples/offloading_backend.py
    offload-proxy --target http://127.0.0.1:5000 --offload-timeout 120

A request to http://127.0.0.1:8080/report returns right away from the
backend; the proxy then calls the slow service and waits for it, so the
backend worker is free for the next request.
"""

import asyncio
import json
import logging

from aiohttp import web

logger = logging.getLogger(__name__)

SLOW_SERVICE_URL = "http://127.0.0.1:5001/render"


async def report(request):
    """Ask the proxy to POST the report parameters to the slow service."""
    params = {"user": request.query.get("user", "anonymous"), "format": "pdf"}
    logger.info(f"Offloading report for {params['user']}")
    return web.Response(
        text=json.dumps(params),
        content_type="application/json",
        headers={
            "Offload-Requested": "1",
            "Offload-Url": SLOW_SERVICE_URL,
            "Offload-Method": "POST",
            "Offload-Forward-Body": "1",
            # Sent to the slow service as "Authorization"
            "Offload-X-Authorization": "Bearer example-token",
        },
    )


async def render(request):
    """Slow service: pretend to render a report."""
    params = await request.json()
    await asyncio.sleep(5)
    return web.json_response({"report": f"rendered for {params['user']}"})


def main():
    logging.basicConfig(level=logging.INFO)

    backend = web.Application()
    backend.router.add_get("/report", report)

    slow_service = web.Application()
    slow_service.router.add_post("/render", render)

    async def serve():
        runners = []
        for app, port in ((backend, 5000), (slow_service, 5001)):
            runner = web.AppRunner(app)
            await runner.setup()
            await web.TCPSite(runner, "127.0.0.1", port).start()
            runners.append(runner)
        logger.info("Backend on :5000, slow service on :5001")
        try:
            await asyncio.Event().wait()
        finally:
            for runner in runners:
                await runner.cleanup()

    asyncio.run(serve())


if __name__ == "__main__":
    main()
