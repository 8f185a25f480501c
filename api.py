from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from config import settings
from database import Database
from errors import ConflictError, InvalidArgumentError, NotFoundError
from factories import create_book, create_user, parse_year
from library import Library
from log import setup_logging, shutdown_logging


library = Library(Database(settings.db_file))


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    try:
        yield
    finally:
        library.close()
        shutdown_logging()


app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, lifespan=lifespan)


@app.exception_handler(InvalidArgumentError)
async def invalid_argument_handler(request: Request, exc: InvalidArgumentError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: Optional[str] = Security(api_key_header)):
    """Dependency guarding every mutating endpoint."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Models ---
class BookModel(BaseModel):
    isbn: str
    title: str
    author: str
    year: int
    category: str
    is_available: bool


class BookCreateModel(BaseModel):
    isbn: str = Field(min_length=1)
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    year: int | str
    category: str = Field(description="e.g. SE, Management, AI")


class BookUpdateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    year: int | str | None = None
    is_available: bool | None = None


class UserModel(BaseModel):
    user_id: str
    username: str
    email: str
    role: str
    is_admin: bool


class UserCreateModel(BaseModel):
    user_id: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    email: str = Field(min_length=1)
    role: str = Field(default="user", description="Admin or RegularUser")


class UserUpdateModel(BaseModel):
    username: str | None = None
    password: str | None = None
    email: str | None = None


class LoginModel(BaseModel):
    username: str
    password: str


class BorrowRequestModel(BaseModel):
    user_id: str
    isbn: str


class BorrowRecordModel(BaseModel):
    record_id: str
    user_id: str
    book_isbn: str
    borrow_date: str
    return_date: str | None = None
    is_returned: bool


# --- Health ---
@app.get("/health")
def health():
    db_ok = True
    try:
        with library.db.transaction() as conn:
            conn.execute("SELECT 1")
    except Exception:
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "db": db_ok,
        "total_books": len(library.get_all_books()),
    }


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(q: Optional[str] = Query(None, description="Filter by title, author or ISBN"),
              available: Optional[bool] = Query(None)):
    books = library.search_books(q) if q else library.get_all_books()
    if available is not None:
        books = [b for b in books if b.is_available == available]
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{isbn}", response_model=BookModel)
def get_book(isbn: str):
    book = library.get_book_by_isbn(isbn)
    if not book:
        raise NotFoundError("Book not found.")
    return BookModel(**book.to_dict())


@app.post("/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel):
    book = create_book(payload.category, payload.isbn, payload.title, payload.author, payload.year)
    if not library.add_book(book):
        raise ConflictError(f"Book with ISBN {book.isbn} already exists.")
    return BookModel(**book.to_dict())


@app.put("/books/{isbn}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(isbn: str, update: BookUpdateModel):
    book = library.get_book_by_isbn(isbn)
    if not book:
        raise NotFoundError("Book not found.")
    if update.title:
        book.title = update.title.strip()
    if update.author:
        book.author = update.author.strip()
    if update.year is not None:
        book.year = parse_year(update.year)
    if update.is_available is not None:
        book.is_available = update.is_available
    if not library.update_book(book):
        raise NotFoundError("Book not found.")
    return BookModel(**book.to_dict())


@app.delete("/books/{isbn}", dependencies=[Depends(get_api_key)])
def delete_book(isbn: str):
    if not library.delete_book(isbn):
        raise NotFoundError("Book not found.")
    return {"message": "Book removed."}


# --- Users ---
@app.get("/users", response_model=List[UserModel], dependencies=[Depends(get_api_key)])
def get_users():
    return [UserModel(**u.to_dict()) for u in library.get_all_users()]


@app.get("/users/{user_id}", response_model=UserModel, dependencies=[Depends(get_api_key)])
def get_user(user_id: str):
    user = library.get_user_by_id(user_id)
    if not user:
        raise NotFoundError("User not found.")
    return UserModel(**user.to_dict())


@app.post("/users", response_model=UserModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_user(payload: UserCreateModel):
    user = create_user(payload.role, payload.user_id, payload.username, payload.password, payload.email)
    if not library.add_user(user):
        raise ConflictError("User id or username already exists.")
    return UserModel(**user.to_dict())


@app.put("/users/{user_id}", response_model=UserModel, dependencies=[Depends(get_api_key)])
def update_user(user_id: str, update: UserUpdateModel):
    user = library.get_user_by_id(user_id)
    if not user:
        raise NotFoundError("User not found.")
    if update.username:
        user.username = update.username
    if update.password:
        user.password = update.password
    if update.email:
        user.email = update.email
    if not library.update_user(user):
        raise ConflictError("Username already exists.")
    return UserModel(**user.to_dict())


@app.delete("/users/{user_id}", dependencies=[Depends(get_api_key)])
def delete_user(user_id: str):
    if not library.delete_user(user_id):
        raise NotFoundError("User not found.")
    return {"message": "User removed."}


@app.post("/login", response_model=UserModel)
def login(credentials: LoginModel):
    user = library.authenticate(credentials.username, credentials.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password.")
    return UserModel(**user.to_dict())


# --- Borrowing ---
@app.post("/borrow", dependencies=[Depends(get_api_key)])
def borrow(request: BorrowRequestModel):
    if not library.borrow_book(request.user_id, request.isbn):
        raise ConflictError("Book is not available for borrowing.")
    return {"message": "Book borrowed."}


@app.post("/return", dependencies=[Depends(get_api_key)])
def return_book(request: BorrowRequestModel):
    if not library.return_book(request.user_id, request.isbn):
        raise ConflictError("No active borrow for this user and book.")
    return {"message": "Book returned."}


@app.get("/borrow-records", response_model=List[BorrowRecordModel])
def get_borrow_records(user_id: Optional[str] = Query(None), active: bool = Query(False)):
    if user_id:
        records = library.get_borrow_records_for_user(user_id)
    elif active:
        records = library.get_active_borrow_records()
    else:
        records = library.get_all_borrow_records()
    if active:
        records = [r for r in records if r.is_active]
    return [BorrowRecordModel(**r.to_dict()) for r in records]
