import asyncio

from ambulance_tracker.models import PollingConfig, RequestKind, TrackedRequest
from ambulance_tracker.request_tracker import RequestTracker
from dispatch_server import DispatchServer


async def navigate(destination):
    print(f"Navigate to: {destination}")


async def notify(notification):
    print(f"[{notification.title}] {notification.description}")


async def main():
    PORT = 8000
    server = DispatchServer(token="demo-token", error_rate=0.1)
    server.script("42", "Pending", "Pending", "Pending", "Assigned")
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    config = PollingConfig.for_kind(RequestKind.booking, interval=1.0, phase_interval=0.5)
    tracker = RequestTracker(
        f"http://localhost:{PORT}",
        TrackedRequest(id="42", kind=RequestKind.booking),
        "demo-token",
        navigate=navigate,
        notify=notify,
        config=config,
    )

    async with tracker:
        await tracker.start()
        while tracker.poller.is_active:
            print(f"{tracker.view.title} (phase {tracker.rotator.phase})")
            await asyncio.sleep(0.5)
        print(f"Final state: {tracker.state.value}")
        await asyncio.sleep(config.success_redirect_delay + 0.5)

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
