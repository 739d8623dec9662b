#!/usr/bin/env python3
"""
A small server-rendered blog with an admin panel for posts and authors.
"""

import math
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click
from flask import (
    Flask,
    abort,
    redirect,
    render_template_string,
    request,
    session,
    url_for,
)
from markupsafe import Markup
from werkzeug.middleware.proxy_fix import ProxyFix

from letterpress.auth import (
    check_password,
    csrf_token,
    gate,
    is_authenticated,
    is_protected,
    rate_limit,
    start_session,
)
from letterpress.importer import import_legacy_posts, load_legacy_file
from letterpress.repositories import (
    AuthorRepository,
    PostRepository,
    SQLiteAuthorRepository,
    SQLitePostRepository,
    parse_id,
)
from letterpress.store import close_db, get_db, init_db

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
DB_FILE = Path(os.environ.get("LETTERPRESS_DB", ROOT / "data" / "blog.sqlite3"))

ENV_FILE = ROOT / ".env"
SECRET_FILE = ROOT / ".secret_key"

SITE_NAME = "letterpress"
POSTS_PER_PAGE = 6
ADMIN_POSTS_PER_PAGE = 10
SESSION_LIFETIME = timedelta(hours=24)
SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}


def _read_env_file() -> dict[str, str]:
    env = {}
    if not ENV_FILE.exists():
        return env
    for ln in ENV_FILE.read_text().splitlines():
        ln = ln.strip()
        if not ln or ln.startswith("#") or "=" not in ln:
            continue
        k, v = ln.split("=", 1)
        env[k.strip()] = v.strip()
    return env


def _secret_key() -> str:
    if os.environ.get("SESSION_SECRET"):
        return os.environ["SESSION_SECRET"]
    if SECRET_FILE.exists():
        return SECRET_FILE.read_text().strip()
    key = secrets.token_hex(32)
    SECRET_FILE.write_text(key)
    return key


ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD") or _read_env_file().get(
    "ADMIN_PASSWORD", ""
)

try:
    __version__ = version("letterpress")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# App + template filters
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(
    SECRET_KEY=_secret_key(),
    DATABASE=str(DB_FILE),
    ADMIN_PASSWORD=ADMIN_PASSWORD,
    POSTS_PER_PAGE=POSTS_PER_PAGE,
    ADMIN_POSTS_PER_PAGE=ADMIN_POSTS_PER_PAGE,
)
app.config.update(
    PERMANENT_SESSION_LIFETIME=SESSION_LIFETIME,
    SESSION_REFRESH_EACH_REQUEST=False,  # absolute 24 h, not extended by activity
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SECURE=os.environ.get("SESSION_COOKIE_SECURE", "0") == "1",
)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)
app.teardown_appcontext(close_db)

app.jinja_env.globals["csrf_token"] = csrf_token
app.jinja_env.globals["version"] = __version__
app.jinja_env.globals["site_name"] = SITE_NAME


@app.template_filter("date")
def date_filter(iso: str | None, fmt: str = "") -> str:
    """
    ISO timestamp → "January 5, 2025".  An ``h`` in *fmt* appends the hour,
    ``h`` plus ``m`` the hour and minute ("… at 3:04 PM").
    """
    if not iso:
        return ""
    if iso.endswith("Z"):
        # imported timestamps ("…000Z"); 3.10's fromisoformat rejects the Z
        iso = iso[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(iso)
    except ValueError:
        return iso
    out = f"{dt.strftime('%B')} {dt.day}, {dt.year}"
    if "h" in fmt:
        hour = dt.hour % 12 or 12
        clock = f"{hour}:{dt.minute:02d}" if "m" in fmt else str(hour)
        out += f" at {clock} {'AM' if dt.hour < 12 else 'PM'}"
    return out


@app.template_filter("html")
def html_filter(content: str | None) -> Markup:
    """Post bodies are sanitized on write, so they render unescaped."""
    return Markup(content or "")


###############################################################################
# Repositories + pagination
###############################################################################
def author_repository() -> AuthorRepository:
    return SQLiteAuthorRepository(get_db())


def post_repository() -> PostRepository:
    return SQLitePostRepository(get_db())


@dataclass
class Page:
    items: list
    page: int
    per_page: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.per_page)

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


def paginate(items: list, *, page: int, per_page: int) -> Page:
    """Slice an already loaded, already ordered list for *page* (1-based)."""
    offset = (page - 1) * per_page
    return Page(
        items=items[offset : offset + per_page],
        page=page,
        per_page=per_page,
        total=len(items),
    )


def page_arg() -> int:
    try:
        page = int(request.args.get("page", 1))
    except (TypeError, ValueError):
        return 1
    return max(page, 1)


def search_arg() -> str:
    return request.args.get("search", "").strip()


def _form(*names: str) -> dict[str, str]:
    return {n: request.form.get(n, "").strip() for n in names}


###############################################################################
# Request hooks
###############################################################################
@app.before_request
def session_gate():
    if is_protected(request.path):
        return gate()


@app.before_request
def csrf_protect():
    # ➊ read-only verbs ⇒ always allowed
    if request.method in SAFE_METHODS:
        return

    # ➋ no logged-in flag yet ⇒ allow (covers /login POST)
    if not is_authenticated():
        return

    # ➌ for authenticated users we REQUIRE a valid token
    token = session.get("csrf", "")
    sent = request.form.get("csrf") or request.headers.get("X-CSRFToken", "")
    if not token or not secrets.compare_digest(token, sent):
        abort(403)


@app.after_request
def sec_headers(resp):
    resp.headers.update(
        {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }
    )
    return resp


###############################################################################
# Templates
###############################################################################
def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


TEMPL_PROLOG = """
<!doctype html>
<html lang="en">
<title>{{ title or site_name }}</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta charset="utf-8">
<style>
html{font-family:-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,"Helvetica Neue",Arial,sans-serif}body{font-size:1.1rem;line-height:1.6;max-width:42em;margin:auto;color:#222;background:#fdfdfb;padding:13px}h1,h2,h3{line-height:1.15}a{color:#1d4e89}img{max-width:100%;height:auto}input,textarea,select{width:100%;box-sizing:border-box;padding:6px 10px;margin-bottom:10px;border:1px solid #bbb;border-radius:4px;font:inherit}textarea{min-height:8em}button{padding:5px 12px;cursor:pointer}table{width:100%;border-collapse:collapse}td,th{padding:.4em;border-bottom:1px solid #ddd;text-align:left}.error{color:#a40000;background:#fbeaea;padding:.5em 1em;border-left:4px solid #a40000}.muted{color:#777;font-size:.85em}nav.pages{margin-top:2em;padding-top:1em;border-top:1px solid #ddd;font-size:.9em}form.inline{display:inline}form.inline button{background:none;border:none;color:#a40000;padding:0}
</style>
<header style="display:flex;justify-content:space-between;align-items:baseline;">
  <h1 style="margin:.5em 0;"><a href="{{ url_for('posts_index') }}" style="text-decoration:none;color:inherit;">{{ site_name }}</a></h1>
  <nav>
  {% if session.get('logged_in') %}
    <a href="{{ url_for('admin_posts') }}">Posts</a> ·
    <a href="{{ url_for('admin_authors') }}">Authors</a> ·
    <a href="{{ url_for('logout') }}">Logout</a>
  {% else %}
    <a href="{{ url_for('login') }}">Login</a>
  {% endif %}
  </nav>
</header>
<main>
"""

TEMPL_EPILOG = """
</main>
<footer class="muted" style="margin-top:3em;">{{ site_name }} v{{ version }}</footer>
</html>
"""

TEMPL_PAGES = """
{% if pager.pages > 1 %}
<nav class="pages">
  {% if pager.has_previous %}
    <a href="{{ url_for(request.endpoint, search=search or None, page=pager.page - 1) }}">← Previous</a>
  {% endif %}
  <span>Page {{ pager.page }} of {{ pager.pages }}</span>
  {% if pager.has_next %}
    <a href="{{ url_for(request.endpoint, search=search or None, page=pager.page + 1) }}">Next →</a>
  {% endif %}
</nav>
{% endif %}
"""


###############################################################################
# Authentication
###############################################################################
@app.route("/login", methods=["GET", "POST"])
@rate_limit(max_requests=5, window=60)
def login():
    if request.method == "GET" and is_authenticated():
        return redirect(url_for("admin_posts"))

    error = None
    if request.method == "POST":
        if check_password(request.form.get("password"), app.config["ADMIN_PASSWORD"]):
            return redirect(start_session())
        app.logger.warning("Failed admin login from %s", request.remote_addr)
        error = "Invalid password. Please try again."

    return render_template_string(TEMPL_LOGIN, title="Admin Login", error=error)


TEMPL_LOGIN = wrap("""
<h2>Admin Login</h2>
{% if error %}<p class="error">{{ error }}</p>{% endif %}
<form method="post">
  {% if csrf_token() %}
  <input type="hidden" name="csrf" value="{{ csrf_token() }}">
  {% endif %}
  <label for="password">Password</label>
  <input id="password" name="password" type="password" autocomplete="current-password" autofocus>
  <button type="submit">Sign in</button>
</form>
""")


@app.route("/logout")
def logout():
    session.clear()
    return redirect(url_for("index"))


###############################################################################
# Public pages
###############################################################################
@app.route("/")
def index():
    return redirect(url_for("posts_index"))


@app.route("/posts")
def posts_index():
    search = search_arg()
    repo = post_repository()
    posts = repo.search(search) if search else repo.list_all()
    pager = paginate(posts, page=page_arg(), per_page=app.config["POSTS_PER_PAGE"])
    return render_template_string(
        TEMPL_POSTS, pager=pager, search=search, title="Blog Posts"
    )


TEMPL_POSTS = wrap("""
{% for post in pager.items %}
  <article style="margin-bottom:2em;">
    <h2 style="margin-bottom:.2em;"><a href="{{ url_for('posts_show', slug=post.slug) }}">{{ post.title }}</a></h2>
    <p class="muted">{{ post.created_at|date('') }}{% if post.author_name %} · {{ post.author_name }}{% endif %}</p>
    <p>{{ post.excerpt|truncate(200) }}</p>
  </article>
{% else %}
  <p>No posts yet.</p>
{% endfor %}
""" + TEMPL_PAGES)


@app.route("/posts/<slug>")
def posts_show(slug):
    post = post_repository().get_by_slug(slug)
    if not post:
        abort(404)
    return render_template_string(TEMPL_POST, post=post, title=post.title)


TEMPL_POST = wrap("""
<article>
  <h2>{{ post.title }}</h2>
  <p class="muted">
    {{ post.created_at|date('hm') }}
    {% if post.author_name %} · by {{ post.author_name }}{% endif %}
    {% if post.updated_at != post.created_at %} · updated {{ post.updated_at|date('') }}{% endif %}
  </p>
  <div class="e-content">{{ post.content|html }}</div>
</article>
<p><a href="{{ url_for('posts_index') }}">← All posts</a></p>
""")


###############################################################################
# Admin – posts
###############################################################################
POST_FIELDS = ("title", "excerpt", "content", "author_id")


def _render_post_form(post, *, error=None, status=200, title="Admin - Create Post"):
    return (
        render_template_string(
            TEMPL_POST_FORM,
            post=post,
            authors=author_repository().list_all(),
            error=error,
            title=title,
        ),
        status,
    )


@app.route("/admin/posts", methods=["GET"])
def admin_posts():
    search = search_arg()
    repo = post_repository()
    posts = repo.search(search) if search else repo.list_all()
    pager = paginate(
        posts, page=page_arg(), per_page=app.config["ADMIN_POSTS_PER_PAGE"]
    )
    return render_template_string(
        TEMPL_ADMIN_POSTS, pager=pager, search=search, title="Admin - Manage Posts"
    )


TEMPL_ADMIN_POSTS = wrap("""
<h2>Posts</h2>
<form method="get" action="{{ url_for('admin_posts') }}">
  <input name="search" value="{{ search }}" placeholder="Search title, excerpt or content">
</form>
<p><a href="{{ url_for('admin_posts_new') }}">+ New post</a></p>
<table>
  <tr><th>Title</th><th>Author</th><th>Created</th><th></th></tr>
  {% for post in pager.items %}
  <tr>
    <td><a href="{{ url_for('posts_show', slug=post.slug) }}">{{ post.title }}</a></td>
    <td>{{ post.author_name or '—' }}</td>
    <td class="muted">{{ post.created_at|date('') }}</td>
    <td>
      <a href="{{ url_for('admin_posts_edit', post_id=post.id) }}">Edit</a>
      <form class="inline" method="post" action="{{ url_for('admin_posts_delete', post_id=post.id) }}"
            onsubmit="return confirm('Delete this post?');">
        <input type="hidden" name="csrf" value="{{ csrf_token() }}">
        <button type="submit">Delete</button>
      </form>
    </td>
  </tr>
  {% else %}
  <tr><td colspan="4">{% if search %}No posts match “{{ search }}”.{% else %}No posts yet.{% endif %}</td></tr>
  {% endfor %}
</table>
""" + TEMPL_PAGES)


@app.route("/admin/posts/new")
def admin_posts_new():
    return _render_post_form(None)


@app.route("/admin/posts", methods=["POST"])
def admin_posts_store():
    form = _form(*POST_FIELDS)
    if not (form["title"] and form["excerpt"] and form["content"]):
        return _render_post_form(
            form, error="Title, excerpt, and content are required", status=400
        )

    post = post_repository().create(
        title=form["title"],
        excerpt=form["excerpt"],
        content=form["content"],
        author_id=parse_id(form["author_id"]),
    )
    if not post:
        return _render_post_form(form, error="Error creating post", status=500)
    return redirect(url_for("admin_posts"))


@app.route("/admin/posts/<int:post_id>/edit")
def admin_posts_edit(post_id):
    post = post_repository().get_by_id(post_id)
    if not post:
        abort(404)
    return _render_post_form(post, title=f"Admin - Edit Post: {post.title}")


@app.route("/admin/posts/<int:post_id>", methods=["POST"])
def admin_posts_update(post_id):
    form = {**_form(*POST_FIELDS), "id": post_id}
    if not (form["title"] and form["excerpt"] and form["content"]):
        return _render_post_form(
            form,
            error="Title, excerpt, and content are required",
            status=400,
            title="Admin - Edit Post",
        )

    post = post_repository().update(
        post_id,
        title=form["title"],
        excerpt=form["excerpt"],
        content=form["content"],
        author_id=parse_id(form["author_id"]),
    )
    if not post:
        return _render_post_form(
            form, error="Error updating post", status=500, title="Admin - Edit Post"
        )
    return redirect(url_for("admin_posts"))


@app.route("/admin/posts/<int:post_id>/delete", methods=["POST"])
def admin_posts_delete(post_id):
    if not post_repository().delete(post_id):
        return render_error("Error deleting post", 500)
    return redirect(url_for("admin_posts"))


TEMPL_POST_FORM = wrap("""
{% set p = post or {} %}
<h2>{{ 'Edit post' if p.id else 'New post' }}</h2>
{% if error %}<p class="error">{{ error }}</p>{% endif %}
<form method="post"
      action="{{ url_for('admin_posts_update', post_id=p.id) if p.id else url_for('admin_posts_store') }}">
  <input type="hidden" name="csrf" value="{{ csrf_token() }}">
  <label for="title">Title</label>
  <input id="title" name="title" value="{{ p.title or '' }}">
  <label for="excerpt">Excerpt</label>
  <textarea id="excerpt" name="excerpt" style="min-height:4em;">{{ p.excerpt or '' }}</textarea>
  <label for="content">Content (HTML)</label>
  <textarea id="content" name="content" style="min-height:16em;">{{ p.content or '' }}</textarea>
  <label for="author_id">Author</label>
  <select id="author_id" name="author_id">
    <option value="">— none —</option>
    {% for a in authors %}
      <option value="{{ a.id }}" {% if p.author_id and p.author_id|string == a.id|string %}selected{% endif %}>{{ a.name }}</option>
    {% endfor %}
  </select>
  <button type="submit">Save</button>
  <a href="{{ url_for('admin_posts') }}" style="margin-left:1rem;">Cancel</a>
</form>
""")


###############################################################################
# Admin – authors
###############################################################################
AUTHOR_FIELDS = ("name", "email", "bio")


def _render_author_form(author, *, error=None, status=200, title="Admin - Create Author"):
    return (
        render_template_string(
            TEMPL_AUTHOR_FORM, author=author, error=error, title=title
        ),
        status,
    )


@app.route("/admin/authors", methods=["GET"])
def admin_authors():
    search = search_arg()
    repo = author_repository()
    authors = repo.search(search) if search else repo.list_with_post_count()
    return render_template_string(
        TEMPL_ADMIN_AUTHORS,
        authors=authors,
        search=search,
        title="Admin - Manage Authors",
    )


TEMPL_ADMIN_AUTHORS = wrap("""
<h2>Authors</h2>
<form method="get" action="{{ url_for('admin_authors') }}">
  <input name="search" value="{{ search }}" placeholder="Search name or email">
</form>
<p><a href="{{ url_for('admin_authors_new') }}">+ New author</a></p>
<table>
  <tr><th>Name</th><th>Email</th><th>Posts</th><th></th></tr>
  {% for a in authors %}
  <tr>
    <td>{{ a.name }}</td>
    <td>{{ a.email or '—' }}</td>
    <td>{{ a.post_count if a.post_count is not none else '' }}</td>
    <td>
      <a href="{{ url_for('admin_authors_edit', author_id=a.id) }}">Edit</a>
      <form class="inline" method="post" action="{{ url_for('admin_authors_delete', author_id=a.id) }}"
            onsubmit="return confirm('Delete this author? Their posts are kept.');">
        <input type="hidden" name="csrf" value="{{ csrf_token() }}">
        <button type="submit">Delete</button>
      </form>
    </td>
  </tr>
  {% else %}
  <tr><td colspan="4">{% if search %}No authors match “{{ search }}”.{% else %}No authors yet.{% endif %}</td></tr>
  {% endfor %}
</table>
""")


@app.route("/admin/authors/new")
def admin_authors_new():
    return _render_author_form(None)


@app.route("/admin/authors", methods=["POST"])
def admin_authors_store():
    form = _form(*AUTHOR_FIELDS)
    if not form["name"]:
        return _render_author_form(form, error="Name is required", status=400)

    author = author_repository().create(
        name=form["name"], email=form["email"], bio=form["bio"]
    )
    if not author:
        return _render_author_form(
            form,
            error="Error creating author (email might already exist)",
            status=500,
        )
    return redirect(url_for("admin_authors"))


@app.route("/admin/authors/<int:author_id>/edit")
def admin_authors_edit(author_id):
    author = author_repository().get_by_id(author_id)
    if not author:
        abort(404)
    return _render_author_form(author, title=f"Admin - Edit Author: {author.name}")


@app.route("/admin/authors/<int:author_id>", methods=["POST"])
def admin_authors_update(author_id):
    form = {**_form(*AUTHOR_FIELDS), "id": author_id}
    if not form["name"]:
        return _render_author_form(
            form, error="Name is required", status=400, title="Admin - Edit Author"
        )

    author = author_repository().update(
        author_id, name=form["name"], email=form["email"], bio=form["bio"]
    )
    if not author:
        return _render_author_form(
            form,
            error="Error updating author (email might already be used)",
            status=500,
            title="Admin - Edit Author",
        )
    return redirect(url_for("admin_authors"))


@app.route("/admin/authors/<int:author_id>/delete", methods=["POST"])
def admin_authors_delete(author_id):
    if not author_repository().delete(author_id):
        return render_error("Error deleting author", 500)
    return redirect(url_for("admin_authors"))


TEMPL_AUTHOR_FORM = wrap("""
{% set a = author or {} %}
<h2>{{ 'Edit author' if a.id else 'New author' }}</h2>
{% if error %}<p class="error">{{ error }}</p>{% endif %}
<form method="post"
      action="{{ url_for('admin_authors_update', author_id=a.id) if a.id else url_for('admin_authors_store') }}">
  <input type="hidden" name="csrf" value="{{ csrf_token() }}">
  <label for="name">Name</label>
  <input id="name" name="name" value="{{ a.name or '' }}">
  <label for="email">Email (optional)</label>
  <input id="email" name="email" type="email" value="{{ a.email or '' }}">
  <label for="bio">Bio (optional)</label>
  <textarea id="bio" name="bio">{{ a.bio or '' }}</textarea>
  <button type="submit">Save</button>
  <a href="{{ url_for('admin_authors') }}" style="margin-left:1rem;">Cancel</a>
</form>
""")


###############################################################################
# Errors
###############################################################################
def render_error(message: str, status: int):
    return render_template_string(TEMPL_ERROR, message=message, title="Error"), status


@app.errorhandler(404)
def not_found(exc):
    """Site-wide “Not Found” page."""
    return render_template_string(TEMPL_404, title="404 - Not Found"), 404


@app.errorhandler(500)
def internal_error(exc):
    """
    Generic 500 page.  Flask has already logged the traceback through
    ``app.logger`` by the time this runs; nothing about the cause is shown.
    """
    return render_template_string(TEMPL_500, title="Error"), 500


TEMPL_ERROR = wrap("""
<h2>Something went wrong</h2>
<p class="error">{{ message }}</p>
<p><a href="{{ url_for('posts_index') }}">Back to the blog</a></p>
""")

TEMPL_404 = wrap("""
<h2>Page not found</h2>
<p>The page you asked for doesn’t exist.
   <a href="{{ url_for('posts_index') }}">Back to the blog</a>.</p>
""")

TEMPL_500 = wrap("""
<h2>Internal Server Error</h2>
<p>Something went wrong! Please try again in a minute.</p>
""")


###############################################################################
# CLI
###############################################################################
@app.cli.command("init-db")
def cli_init_db():
    """Create the authors/posts tables (no-op if they exist)."""
    init_db()
    app.logger.info("Schema ready at %s", app.config["DATABASE"])
    click.secho(f"✅  Database ready: {app.config['DATABASE']}", fg="green")


@app.cli.command("import-json")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def cli_import_json(path: str):
    """Copy posts from an old posts.json file into the database."""
    try:
        data = load_legacy_file(path)
    except ValueError as exc:
        raise click.ClickException(f"{path}: {exc}") from exc

    result = import_legacy_posts(data, db=get_db())
    click.secho(f"✅  Imported {result.imported} post(s).", fg="green")
    for slug in result.skipped:
        click.secho(f"   skipped {slug!r} (duplicate slug or malformed entry)", fg="yellow")


if __name__ == "__main__":
    app.run(debug=True, port=int(os.environ.get("PORT", "3000")))
