import logging
from dataclasses import asdict, dataclass

from django.http import JsonResponse
from django.views.decorators.csrf import ensure_csrf_cookie
from django.views.decorators.http import require_GET, require_POST

from .backend import OrmBackend
from .exceptions import (
    NotAuthenticated,
    NotFoundError,
    PermissionDenied,
    RemoteError,
    ValidationError,
)
from .notifications import RequestNotifier
from .session import SessionProvider
from .store import QuestionStore, parse_tags
from .types import Difficulty

logger = logging.getLogger(__name__)

FAILURE_STATUS = {
    NotAuthenticated: 401,
    PermissionDenied: 403,
    NotFoundError: 404,
    ValidationError: 400,
    RemoteError: 502,
}


@dataclass
class Hub:
    backend: OrmBackend
    session: SessionProvider
    store: QuestionStore
    notices: RequestNotifier


async def open_hub(request, load=True) -> Hub:
    notices = RequestNotifier(request)
    backend = OrmBackend(request)
    session = SessionProvider(backend, notify=notices)
    await session.start()
    # Requests end before a delayed reload would fire; settle() runs it inline.
    store = QuestionStore(backend, notify=notices, reload_delay=0)
    if load:
        await store.attach(session)
    return Hub(backend, session, store, notices)


def respond(hub: Hub, data=None, status=200, failure=None):
    if failure is not None:
        status = next(
            (code for kind, code in FAILURE_STATUS.items() if isinstance(failure, kind)),
            400,
        )
    body = dict(data or {})
    body["notifications"] = hub.notices.as_list()
    hub.session.close()
    return JsonResponse(body, status=status)


def _difficulty(raw):
    if not raw:
        return None
    try:
        return Difficulty(raw)
    except ValueError:
        return None


# The JSON surface has no forms; clients read the csrftoken cookie here.
@ensure_csrf_cookie
@require_GET
async def home(request):
    hub = await open_hub(request)
    questions = hub.store.filter_questions(
        request.GET.get("q", ""),
        request.GET.getlist("tag"),
        _difficulty(request.GET.get("difficulty")),
    )
    return respond(hub, {
        "questions": [asdict(q) for q in questions],
        "tags": hub.store.all_tags(),
        "error": str(hub.store.error) if hub.store.error else None,
    })


@require_GET
async def question_detail(request, question_id):
    hub = await open_hub(request)
    question = hub.store.get_question_by_id(question_id)
    if question is None:
        return respond(hub, {"error": "Question not found"}, status=404)
    return respond(hub, {"question": asdict(question)})


@require_POST
async def add_question(request):
    hub = await open_hub(request)
    question = await hub.store.add_question(
        title=request.POST.get("title", "").strip(),
        description=request.POST.get("description", "").strip(),
        difficulty=request.POST.get("difficulty", ""),
        tags=parse_tags(request.POST.get("tags", "")),
    )
    if question is None:
        return respond(hub, failure=hub.store.last_failure)
    return respond(hub, {"question": asdict(question)}, status=201)


@require_POST
async def add_solution(request, question_id):
    hub = await open_hub(request)
    solution = await hub.store.add_solution(
        question_id,
        title=request.POST.get("title", "").strip(),
        content=request.POST.get("content", "").strip(),
        code=request.POST.get("code", ""),
    )
    if solution is None:
        return respond(hub, failure=hub.store.last_failure)
    await hub.store.settle()
    # A failed reload empties the view; the solution itself was stored.
    question = hub.store.get_question_by_id(question_id)
    return respond(hub, {
        "solution": asdict(solution),
        "question": asdict(question) if question else None,
    }, status=201)


@require_POST
async def add_comment(request, question_id, solution_id):
    hub = await open_hub(request)
    comment = await hub.store.add_comment(question_id, solution_id, request.POST.get("content", ""))
    if comment is None:
        return respond(hub, failure=hub.store.last_failure)
    return respond(hub, {"comment": asdict(comment)}, status=201)


@require_POST
async def toggle_like(request, question_id, solution_id):
    hub = await open_hub(request)
    solution = await hub.store.toggle_like(question_id, solution_id)
    if solution is None:
        return respond(hub, failure=hub.store.last_failure)
    return respond(hub, {
        "likes": solution.likes,
        "liked": solution.liked_by_current_user,
    })


@require_POST
async def signup(request):
    hub = await open_hub(request, load=False)
    password = request.POST.get("password", "")
    if password != request.POST.get("confirm_password", password):
        return respond(hub, {"error": "Passwords do not match"}, status=400)

    ok = await hub.session.sign_up(
        request.POST.get("username", "").strip(),
        request.POST.get("email", "").strip(),
        password,
    )
    return respond(hub, {"ok": ok}, status=201 if ok else 400)


@require_POST
async def user_login(request):
    hub = await open_hub(request, load=False)
    ok = await hub.session.sign_in(request.POST.get("email", "").strip(), request.POST.get("password", ""))
    user = hub.session.current_user
    return respond(hub, {
        "ok": ok,
        "user": asdict(user) if user else None,
    }, status=200 if ok else 401)


@require_POST
async def user_logout(request):
    hub = await open_hub(request, load=False)
    await hub.session.sign_out()
    return respond(hub, {"ok": True})


@require_GET
async def confirm_email(request, uidb64, token):
    hub = await open_hub(request, load=False)
    if not await hub.backend.confirm_email(uidb64, token):
        return respond(hub, {"ok": False, "error": "Invalid or expired confirmation link"}, status=400)
    return respond(hub, {"ok": True})
