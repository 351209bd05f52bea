from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from ...auth import AuthContext, optional_auth
from ...contracts import DishExplanation, ExplainRequest, LanguageOption
from ...errors import ForbiddenOrigin, InvalidInput, RateLimited
from ...governor import RATE_LIMITED, Admission, RequestGovernor
from ...prompts import LANGUAGE_LABELS
from ...resolver import ExplanationResolver
from ...settings import SUPPORTED_LANGUAGES
from ...utils import client_identifier, request_origin

router = APIRouter(tags=["explain"])

MAX_RESTAURANT_ID = 2**31 - 1


def get_resolver(request: Request) -> ExplanationResolver:
    return request.app.state.resolver


def get_governor(request: Request) -> RequestGovernor:
    return request.app.state.governor


async def admit_request(
    request: Request, governor: RequestGovernor = Depends(get_governor)
) -> Admission:
    admission = await governor.admit(client_identifier(request), request_origin(request))
    if admission.allowed:
        return admission
    if admission.reason == RATE_LIMITED:
        raise RateLimited(retry_after=int(admission.retry_after), limit=admission.limit)
    raise ForbiddenOrigin()


def parse_restaurant_id(value: str | int | None) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        restaurant_id = value
    else:
        raw = value.strip()
        if not raw:
            return None
        if not (raw.isascii() and raw.isdigit()):
            raise InvalidInput("restaurantId must be a numeric id.")
        restaurant_id = int(raw)
    # restaurants.id is a 32-bit INTEGER column
    if not 0 <= restaurant_id <= MAX_RESTAURANT_ID:
        raise InvalidInput("restaurantId is out of range.")
    return restaurant_id


@router.post("/explain", response_model=DishExplanation)
async def explain_dish(
    payload: ExplainRequest,
    response: Response,
    admission: Admission = Depends(admit_request),
    auth: AuthContext = Depends(optional_auth),
    resolver: ExplanationResolver = Depends(get_resolver),
) -> DishExplanation:
    restaurant_id = parse_restaurant_id(payload.restaurant_id)
    resolution = await resolver.resolve(
        payload.dish_name,
        payload.language,
        restaurant_id=restaurant_id,
        restaurant_name=payload.restaurant_name,
        auth_context=auth,
    )

    response.headers["X-Data-Source"] = resolution.source
    if resolution.from_cache:
        response.headers["X-Match-Score"] = f"{resolution.score:.3f}"
    response.headers["X-Processing-Time"] = str(resolution.elapsed_ms)
    if admission.limit:
        response.headers["X-RateLimit-Limit"] = str(admission.limit)
        response.headers["X-RateLimit-Remaining"] = str(admission.remaining)
    return resolution.explanation


@router.get("/languages", response_model=list[LanguageOption])
async def supported_languages() -> list[LanguageOption]:
    return [
        LanguageOption(code=code, label=LANGUAGE_LABELS[code][0], native_label=LANGUAGE_LABELS[code][1])
        for code in SUPPORTED_LANGUAGES
    ]
