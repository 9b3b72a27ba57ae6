# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "ribbit @ file:///${PROJECT_ROOT}/../ribbit",
#     "granian>=2.6.0,<3.0.0",
# ]
# ///
"""ASGI server demo.

Fully functional web server using Granian + ribbit Router:

    uv run examples/server.py
    # or
    granian examples.server:router --interface asgi --port 8000
"""

import asyncio
import logging
import sqlite3
import time
from json.decoder import JSONDecodeError

from granian.constants import Interfaces
from granian.server.embed import Server

from ribbit import Context, RequestContext, Response, Router, create_middleware
from ribbit.middleware.proxy_headers import proxy_headers
from ribbit.types import Handler

ADDRESS = "127.0.0.1"
PORT = 8000

logger = logging.getLogger("example")

_db = sqlite3.connect(":memory:")
_db.cursor().executescript("""
CREATE TABLE IF NOT EXISTS user (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS product (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
""")


def build_router(db: sqlite3.Connection) -> Router:
    router = Router()
    router.use(proxy_headers(trusted_proxies=frozenset({"127.0.0.1"})))
    router.use(create_middleware(start_timer, log_request))
    router.get("/", home)
    router.route("/user", user_routes(db))
    router.route("/product", product_routes(db))
    return router


def start_timer(ctx: Context) -> dict[str, float]:
    return {"started": time.perf_counter()}


def log_request(ctx: Context, response: Response) -> None:
    elapsed = (time.perf_counter() - ctx.locals["started"]) * 1000
    logger.info(
        "%s %s %s -> %d (%.1fms)",
        ctx.locals["client"],
        ctx.request.method,
        ctx.matched_route or ctx.request.path,
        response.status,
        elapsed,
    )


async def home(ctx: RequestContext) -> Response:
    return Response.text("Welcome home")


def require_json(ctx: Context) -> None:
    if ctx.request.headers.get("content-type") != "application/json":
        logger.warning("non-json body on %s", ctx.request.path)


def user_routes(db: sqlite3.Connection):
    def configure(router: Router) -> None:
        router.get("/", get_users(db))
        router.get("/:id", get_user(db))
        router.use(create_middleware(require_json))
        router.post("/", create_user(db))
        router.patch("/:id", update_user(db))

    return configure


# closure over handler to inject dependencies
def get_users(db: sqlite3.Connection) -> Handler:
    async def handler(ctx: RequestContext) -> Response:
        cur = db.cursor()
        cur.execute("SELECT * FROM user")
        result = cur.fetchall()
        return Response.json([{"id": row[0], "name": row[1]} for row in result])

    return handler


def get_user(db: sqlite3.Connection) -> Handler:
    async def handler(ctx: RequestContext) -> Response:
        cur = db.cursor()
        try:
            user_id = int(ctx.parameters["id"])
        except ValueError:
            return Response.text("Not found", status=404)
        cur.execute("SELECT * FROM user WHERE id = ?", (user_id,))
        result = cur.fetchone()
        if result is None:
            return Response.text("Not found", status=404)
        return Response.json({"id": result[0], "name": result[1]})

    return handler


def create_user(db: sqlite3.Connection) -> Handler:
    async def handler(ctx: RequestContext) -> Response:
        cur = db.cursor()
        try:
            payload = ctx.request.json()
        except JSONDecodeError:
            return Response.text("Invalid json", status=422)
        try:
            name = payload["name"]
        except KeyError:
            return Response.text("Missing name", status=422)
        cur.execute("INSERT INTO user (name) VALUES (?) RETURNING *", (name,))
        result = cur.fetchone()
        return Response.json({"id": result[0], "name": result[1]}, status=201)

    return handler


def update_user(db: sqlite3.Connection) -> Handler:
    async def handler(ctx: RequestContext) -> Response:
        cur = db.cursor()
        try:
            payload = ctx.request.json()
        except JSONDecodeError:
            return Response.text("Invalid json", status=422)
        try:
            name = payload["name"]
        except KeyError:
            return Response.text("Missing name", status=422)
        cur.execute(
            "UPDATE user SET name = ? WHERE id = ? RETURNING *",
            (name, ctx.parameters["id"]),
        )
        result = cur.fetchone()
        if result is None:
            return Response.text("Not found", status=404)
        return Response.json({"id": result[0], "name": result[1]})

    return handler


def product_routes(db: sqlite3.Connection):
    def configure(router: Router) -> None:
        router.get("/", get_products(db))
        router.get("/:id", get_product(db))
        router.post("/", create_product(db))

    return configure


def get_products(db: sqlite3.Connection) -> Handler:
    async def handler(ctx: RequestContext) -> Response:
        cur = db.cursor()
        cur.execute("SELECT * FROM product")
        result = cur.fetchall()
        return Response.json([{"id": row[0], "name": row[1]} for row in result])

    return handler


def get_product(db: sqlite3.Connection) -> Handler:
    async def handler(ctx: RequestContext) -> Response:
        cur = db.cursor()
        try:
            product_id = int(ctx.parameters["id"])
        except ValueError:
            return Response.text("Not found", status=404)
        cur.execute("SELECT * FROM product WHERE id = ?", (product_id,))
        result = cur.fetchone()
        if result is None:
            return Response.text("Not found", status=404)
        return Response.json({"id": result[0], "name": result[1]})

    return handler


def create_product(db: sqlite3.Connection) -> Handler:
    async def handler(ctx: RequestContext) -> Response:
        cur = db.cursor()
        try:
            payload = ctx.request.json()
        except JSONDecodeError:
            return Response.text("Invalid json", status=422)
        try:
            name = payload["name"]
        except KeyError:
            return Response.text("Missing name", status=422)
        cur.execute("INSERT INTO product (name) VALUES (?) RETURNING *", (name,))
        result = cur.fetchone()
        return Response.json({"id": result[0], "name": result[1]}, status=201)

    return handler


router = build_router(_db)


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    print(router.format_routes())

    server = Server(
        router, address=ADDRESS, port=PORT, interface=Interfaces.ASGI, log_access=True
    )
    try:
        await server.serve()
    except asyncio.CancelledError:
        pass


if __name__ == "__main__":
    asyncio.run(main())
