import subprocess
import sys
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt

from config import settings
from database import Database
from errors import InvalidArgumentError
from factories import create_book, create_user, parse_year
from library import Library
from log import setup_logging, shutdown_logging
from ui_helpers import get_output_mode, print_books, print_records, print_users, set_output_mode
from user import User

console = Console()

app = typer.Typer(help=f"{settings.app_name} CLI", invoke_without_command=True)


def _lib(ctx: typer.Context) -> Library:
    return ctx.obj


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
):
    """Global options; without a command, starts the interactive login session."""
    if output:
        set_output_mode(output)
    setup_logging(console=get_output_mode() != "json")
    lib = Library(Database(db or settings.db_file))
    ctx.obj = lib
    ctx.call_on_close(shutdown_logging)
    ctx.call_on_close(lib.close)
    if ctx.invoked_subcommand is None:
        interactive_session(lib)


# ------------------------- Books ------------------------- #
@app.command("list-books")
def cli_list_books(ctx: typer.Context, available: bool = typer.Option(False, "--available", help="Only books on the shelf")):
    """List all books."""
    lib = _lib(ctx)
    print_books(lib.get_available_books() if available else lib.get_all_books())


@app.command("add-book")
def cli_add_book(ctx: typer.Context, isbn: str, title: str, author: str, year: str,
                 category: str = typer.Argument(..., help="SE | Management | AI")):
    """Add a book."""
    try:
        book = create_book(category, isbn, title, author, year)
    except InvalidArgumentError as e:
        print(f"Error: {e}")
        return
    if _lib(ctx).add_book(book):
        print(f"Successfully added: {book.title} by {book.author} [{book.category}]")
    else:
        print(f"Could not add book: ISBN {isbn} already exists.")


@app.command("update-book")
def cli_update_book(
    ctx: typer.Context,
    isbn: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    year: Optional[str] = typer.Option(None, "--year"),
    available: Optional[bool] = typer.Option(None, "--available/--borrowed"),
):
    """Update a book's details or availability."""
    lib = _lib(ctx)
    book = lib.get_book_by_isbn(isbn)
    if not book:
        print(f"Book with ISBN {isbn} not found.")
        return
    if title:
        book.title = title.strip()
    if author:
        book.author = author.strip()
    if year is not None:
        try:
            book.year = parse_year(year)
        except InvalidArgumentError as e:
            print(f"Error: {e}")
            return
    if available is not None:
        book.is_available = available
    if lib.update_book(book):
        print(f"Book with ISBN {isbn} has been updated.")
    else:
        print(f"Book with ISBN {isbn} could not be updated.")


@app.command("remove-book")
def cli_remove_book(ctx: typer.Context, isbn: str):
    """Remove a book by ISBN."""
    if _lib(ctx).delete_book(isbn):
        print(f"Book with ISBN {isbn} has been removed.")
    else:
        print(f"Book with ISBN {isbn} not found.")


@app.command("find-book")
def cli_find_book(ctx: typer.Context, isbn: str):
    """Find a book by ISBN and show its details."""
    book = _lib(ctx).get_book_by_isbn(isbn)
    if not book:
        print(f"Book with ISBN {isbn} not found.")
        return
    print("Book Found")
    print(f"Title: {book.title}")
    print(f"Author: {book.author}")
    print(f"Year: {book.year}")
    print(f"Category: {book.category}")
    print(f"ISBN: {book.isbn}")
    print(f"Available: {'yes' if book.is_available else 'no'}")


@app.command("search")
def cli_search(ctx: typer.Context, query: str):
    """Search books by title, author or ISBN."""
    print_books(_lib(ctx).search_books(query))


# ------------------------- Users ------------------------- #
@app.command("list-users")
def cli_list_users(ctx: typer.Context):
    """List all users."""
    print_users(_lib(ctx).get_all_users())


@app.command("add-user")
def cli_add_user(ctx: typer.Context, user_id: str, username: str, password: str, email: str,
                 role: str = typer.Option("user", "--role", help="Admin | RegularUser")):
    """Add a user."""
    try:
        user = create_user(role, user_id, username, password, email)
    except InvalidArgumentError as e:
        print(f"Error: {e}")
        return
    if _lib(ctx).add_user(user):
        print(f"Successfully added user: {user.username} [{user.role}]")
    else:
        print(f"Could not add user: id {user_id} or username {username} already exists.")


@app.command("update-user")
def cli_update_user(
    ctx: typer.Context,
    user_id: str,
    username: Optional[str] = typer.Option(None, "--username"),
    password: Optional[str] = typer.Option(None, "--password"),
    email: Optional[str] = typer.Option(None, "--email"),
):
    """Update a user's name, password or email. The role cannot change."""
    lib = _lib(ctx)
    user = lib.get_user_by_id(user_id)
    if not user:
        print(f"User {user_id} not found.")
        return
    if username:
        user.username = username
    if password:
        user.password = password
    if email:
        user.email = email
    if lib.update_user(user):
        print(f"User {user_id} has been updated.")
    else:
        print(f"Could not update user {user_id}: username {user.username} already exists.")


@app.command("remove-user")
def cli_remove_user(ctx: typer.Context, user_id: str):
    """Remove a user by id."""
    if _lib(ctx).delete_user(user_id):
        print(f"User {user_id} has been removed.")
    else:
        print(f"User {user_id} not found.")


# ------------------------- Borrowing ------------------------- #
@app.command("borrow")
def cli_borrow(ctx: typer.Context, user_id: str, isbn: str):
    """Borrow a book for a user."""
    if _lib(ctx).borrow_book(user_id, isbn):
        print(f"Book {isbn} borrowed by {user_id}.")
    else:
        print(f"Book {isbn} is not available for borrowing.")


@app.command("return")
def cli_return(ctx: typer.Context, user_id: str, isbn: str):
    """Return a borrowed book."""
    if _lib(ctx).return_book(user_id, isbn):
        print(f"Book {isbn} returned by {user_id}.")
    else:
        print(f"No active borrow of {isbn} by {user_id}.")


@app.command("records")
def cli_records(ctx: typer.Context, user_id: Optional[str] = typer.Option(None, "--user", help="Only this user's records")):
    """List borrow records."""
    lib = _lib(ctx)
    print_records(lib.get_borrow_records_for_user(user_id) if user_id else lib.get_all_borrow_records())


@app.command("serve")
def cli_serve(host: Optional[str] = typer.Option(None, "--host"), port: Optional[int] = typer.Option(None, "--port")):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    try:
        subprocess.run([sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)])
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")


# ------------------------- Interactive session ------------------------- #
def login(lib: Library) -> Optional[User]:
    console.print(Panel.fit(f"[bold]{settings.app_name}[/]\nPlease log in", box=box.ROUNDED, border_style="blue"))
    for attempt in range(1, settings.max_login_attempts + 1):
        username = Prompt.ask("Username")
        password = Prompt.ask("Password", password=True)
        user = lib.authenticate(username, password)
        if user:
            console.print(f"[green]Welcome, {user.username} ({user.role})[/]")
            return user
        remaining = settings.max_login_attempts - attempt
        console.print(f"[red]Invalid username or password.[/] {remaining} attempt(s) left.")
    return None


def _prompt_add_book(lib: Library) -> None:
    category = Prompt.ask("Category", choices=["SE", "Management", "AI"], default="SE")
    isbn = Prompt.ask("ISBN")
    title = Prompt.ask("Title")
    author = Prompt.ask("Author")
    year = IntPrompt.ask("Year")
    if lib.add_book(create_book(category, isbn, title, author, year)):
        console.print("[green]Book added.[/]")
    else:
        console.print(f"[red]A book with ISBN {isbn} already exists.[/]")


def _prompt_update_book(lib: Library) -> None:
    isbn = Prompt.ask("ISBN to update")
    book = lib.get_book_by_isbn(isbn)
    if not book:
        console.print("[red]Book not found.[/]")
        return
    book.title = Prompt.ask("Title", default=book.title).strip()
    book.author = Prompt.ask("Author", default=book.author).strip()
    book.year = parse_year(Prompt.ask("Year", default=str(book.year)))
    if lib.update_book(book):
        console.print("[green]Book updated.[/]")
    else:
        console.print("[red]Book could not be updated.[/]")


def _prompt_remove_book(lib: Library) -> None:
    isbn = Prompt.ask("ISBN to remove")
    if not Confirm.ask(f"Remove book {isbn}?", default=False):
        return
    if lib.delete_book(isbn):
        console.print("[green]Book removed.[/]")
    else:
        console.print("[red]Book not found.[/]")


def _prompt_add_user(lib: Library) -> None:
    role = Prompt.ask("Role", choices=["Admin", "RegularUser"], default="RegularUser")
    user_id = Prompt.ask("User id")
    username = Prompt.ask("Username")
    password = Prompt.ask("Password", password=True)
    email = Prompt.ask("Email")
    if lib.add_user(create_user(role, user_id, username, password, email)):
        console.print("[green]User added.[/]")
    else:
        console.print("[red]User id or username already exists.[/]")


def _prompt_update_user(lib: Library) -> None:
    user_id = Prompt.ask("User id to update")
    user = lib.get_user_by_id(user_id)
    if not user:
        console.print("[red]User not found.[/]")
        return
    user.username = Prompt.ask("Username", default=user.username)
    user.email = Prompt.ask("Email", default=user.email)
    password = Prompt.ask("New password (blank keeps the current one)", password=True, default="", show_default=False)
    if password:
        user.password = password
    if lib.update_user(user):
        console.print("[green]User updated.[/]")
    else:
        console.print("[red]Username already exists.[/]")


def _prompt_remove_user(lib: Library, current: User) -> None:
    user_id = Prompt.ask("User id to remove")
    if user_id == current.user_id:
        console.print("[red]You cannot delete your own account.[/]")
        return
    if not Confirm.ask(f"Remove user {user_id}?", default=False):
        return
    if lib.delete_user(user_id):
        console.print("[green]User removed.[/]")
    else:
        console.print("[red]User not found.[/]")


def main_menu(lib: Library, user: User) -> None:
    """Menu loop for a logged-in user; user management is admin only."""
    actions = [
        ("List books", lambda: print_books(lib.get_all_books())),
        ("Search books", lambda: print_books(lib.search_books(Prompt.ask("Search")))),
        ("Add book", lambda: _prompt_add_book(lib)),
        ("Update book", lambda: _prompt_update_book(lib)),
        ("Remove book", lambda: _prompt_remove_book(lib)),
        ("Borrow book", lambda: console.print(
            "[green]Borrowed.[/]" if lib.borrow_book(user.user_id, Prompt.ask("ISBN"))
            else "[red]Book is not available.[/]")),
        ("Return book", lambda: console.print(
            "[green]Returned.[/]" if lib.return_book(user.user_id, Prompt.ask("ISBN"))
            else "[red]You have no active borrow of that book.[/]")),
        ("My borrow records", lambda: print_records(lib.get_borrow_records_for_user(user.user_id))),
    ]
    if user.is_admin():
        actions += [
            ("List users", lambda: print_users(lib.get_all_users())),
            ("Add user", lambda: _prompt_add_user(lib)),
            ("Update user", lambda: _prompt_update_user(lib)),
            ("Remove user", lambda: _prompt_remove_user(lib, user)),
            ("All borrow records", lambda: print_records(lib.get_all_borrow_records())),
        ]

    while True:
        console.print(Panel.fit(
            "\n".join(f"[cyan]{i}[/]. {label}" for i, (label, _) in enumerate(actions, 1)) + "\n[cyan]0[/]. Logout",
            title=f"Main Menu - {user.username}",
            border_style="blue",
        ))
        choice = IntPrompt.ask("Choice", default=0)
        if choice == 0:
            console.print("[green]Goodbye![/]")
            return
        if 1 <= choice <= len(actions):
            try:
                actions[choice - 1][1]()
            except InvalidArgumentError as e:
                console.print(f"[red]Error: {e}[/]")
        else:
            console.print("[yellow]Invalid choice, try again.[/]")
        print()


def interactive_session(lib: Library) -> None:
    user = login(lib)
    if user is None:
        console.print("[bold red]Too many failed login attempts.[/]")
        raise typer.Exit(code=1)
    main_menu(lib, user)


if __name__ == "__main__":
    app()
