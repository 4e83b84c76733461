"""Shared test fixtures for devtoolbox tests."""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from devtoolbox.manager import Manager
from devtoolbox.registry import ScannerRegistry
from devtoolbox.runtime.base import Database, SyntheticResponse
from devtoolbox.runtime.memory import InMemoryApplication
from devtoolbox.runtime.sqlite import SQLiteDatabase


PROJECT_FILES = {
    "app/__init__.py": "",
    "app/models/__init__.py": "",
    "app/models/base.py": "class Model:\n    pass\n",
    "app/models/user.py": '''from app.models.base import Model


class User(Model):
    __tablename__ = "users"
    fillable = ["name", "email"]
    hidden = ["password"]
    casts = {"is_admin": "boolean"}

    def posts(self):
        return self.has_many("Post")

    def scope_active(self, query):
        return query
''',
    "app/models/post.py": '''from app.models.base import Model
from app.models.user import User


class Post(Model):
    fillable = ["title", "body"]

    def author(self) -> User:
        return self.belongs_to(User)
''',
    "app/controllers/users.py": '''from app.models.user import User


class UserController:
    def index(self):
        return User.query_all()

    def show(self, user_id: int) -> User:
        return User.find(user_id)
''',
    "app/jobs/send_welcome.py": '''from app.models.user import User


class SendWelcomeEmail:
    def handle(self, user: User):
        return user.email
''',
    "app/observers/user_observer.py": '''class UserObserver:
    def created(self, user):
        return None
''',
    "app/routes/web.py": "from app.controllers.users import UserController\n",
    "app/templates/users/show.html": (
        "<h1>{{ user.name }}</h1>\n"
        "<p>{{ user.email }}</p>\n"
        '<input name="email">\n'
    ),
    "app/templates/components/button.html": "<button>{{ label }}</button>\n",
    "migrations/001_create_users.py": 'columns = ["legacy_flag"]\n',
}


class RouteServiceProvider:
    def __init__(self, app):
        self.app = app

    def register(self):
        pass

    def boot(self, registry: ScannerRegistry):
        pass


class CacheServiceProvider:
    defer = True

    def __init__(self, app):
        self.app = app

    def provides(self):
        return ["cache.store"]


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small application source tree."""
    for relative, content in PROJECT_FILES.items():
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return tmp_path


@pytest.fixture
def database() -> Generator[SQLiteDatabase, None, None]:
    """In-memory SQLite database with users and posts tables."""
    db = SQLiteDatabase()
    db.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT, password TEXT, "
        "is_admin INTEGER, legacy_flag INTEGER, created_at TEXT, updated_at TEXT)"
    )
    db.execute("CREATE TABLE posts (id INTEGER PRIMARY KEY, title TEXT, body TEXT, user_id INTEGER)")
    db.execute("CREATE TABLE migrations (id INTEGER PRIMARY KEY, migration TEXT)")
    db.execute("INSERT INTO users (name, email) VALUES (?, ?)", ["Ada", "ada@example.com"])
    for i in range(1, 5):
        db.execute("INSERT INTO posts (title, user_id) VALUES (?, ?)", [f"Post {i}", 1])
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def app(project: Path, database: SQLiteDatabase) -> InMemoryApplication:
    """Application with routes, bindings, commands, middleware and providers."""
    application = InMemoryApplication(base_path=project, database=database)

    def home():
        return "home"

    def show_user(id, request=None):
        database.select("SELECT * FROM users WHERE id = ?", [id])
        database.select("SELECT * FROM users WHERE id = ?", [id])
        for post_id in range(1, 5):
            database.select(f"SELECT * FROM posts WHERE id = {post_id}")
        return SyntheticResponse(status_code=200, body="user")

    def broken():
        database.select("SELECT COUNT(*) FROM users")
        raise RuntimeError("boom")

    application.get("/", home, name="home")
    application.get("users", "devtoolbox.registry.ScannerRegistry@all", name="users.index", middleware=["web", "auth"])
    application.get("users/{id}", show_user, name="users.show", middleware=["web"], wheres={"id": r"\d+"})
    application.post("posts", "devtoolbox.registry.ScannerRegistry@register", name="posts.store")
    application.get("admin/dashboard", home, name="admin.dashboard", middleware=["web"])
    application.delete("api/posts/{id}", "devtoolbox.registry.ScannerRegistry@unregister", middleware=["api"])
    application.get("ping", lambda: "pong")
    application.get("broken", broken, name="broken")

    application.singleton(ScannerRegistry)
    application.bind(Database, SQLiteDatabase)
    application.bind("cache", lambda container: {"driver": "array"})
    application.instance("config", {"debug": True})
    application.bind("mailer", "devtoolbox.missing.Mailer")
    application.alias("registry", ScannerRegistry)

    application.add_command("migrate:status", "Show migration status")
    application.add_command("db:seed", "Seed the database")
    application.add_command(
        "reports:generate",
        "Generate monthly reports",
        signature="reports:generate {--month=}",
        help="Builds the report for the given month",
    )

    application.add_global_middleware("app.middleware.TrustProxies")
    application.alias_middleware("auth", "app.middleware.Authenticate")
    application.alias_middleware("throttle", "app.middleware.ThrottleRequests")
    application.alias_middleware("verified", "app.middleware.EnsureEmailIsVerified")
    application.middleware_group("web", ["app.middleware.StartSession", "app.middleware.VerifyCsrfToken"])
    application.middleware_group("api", ["throttle"])

    application.register_provider(RouteServiceProvider)
    application.register_provider(CacheServiceProvider, deferred=True)
    return application


@pytest.fixture
def empty_app(tmp_path: Path) -> InMemoryApplication:
    """Application with nothing registered."""
    return InMemoryApplication(base_path=tmp_path)


@pytest.fixture
def manager(app: InMemoryApplication) -> Manager:
    return Manager(app)
