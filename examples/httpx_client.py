import asyncio

import httpx

from batchdispatch import Dispatcher
from batchdispatch.logging import setup_logging


async def main() -> None:
    setup_logging()
    dispatcher = Dispatcher()
    client = httpx.AsyncClient()

    todo, post, literal = await dispatcher.resolve(
        [
            lambda: client.get("https://jsonplaceholder.typicode.com/todos/1"),
            lambda: client.post(
                "https://jsonplaceholder.typicode.com/posts",
                json={"title": "foo", "body": "bar", "userId": 2323},
            ),
            "literal",
        ]
    )
    print(todo.status, todo.body)
    print(post.status, post.body)
    print(literal)


if __name__ == "__main__":
    asyncio.run(main())
