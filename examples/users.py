import asyncio

from batchdispatch import Dispatcher
from batchdispatch.logging import setup_logging
from batchdispatch.services.users import JsonPlaceholderUsers


async def main() -> None:
    setup_logging()
    service = JsonPlaceholderUsers(client=Dispatcher())

    for user in await service.users(limit=3):
        print(user["id"], user["name"])

    # One round-trip for all three lookups.
    for user in await service.users_by_ids([4, 5, 6]):
        print(user.get("id"), user.get("email"))


if __name__ == "__main__":
    asyncio.run(main())
