"""Admin surface for the manual Stripe platform configuration."""

from fastapi import APIRouter, Depends

from ..api.dependencies.auth import require_admin
from ..api.dependencies.services import get_app_config_service
from ..core.exceptions import DomainException
from ..schemas.credential_schemas import AppKeys, AppKeysResponse
from ..services.app_config_service import AppConfigService

router = APIRouter(
    prefix="/api/apps/stripe/keys",
    tags=["app-keys"],
    dependencies=[Depends(require_admin)],
)


@router.put("", response_model=AppKeysResponse)
def save_keys(keys: AppKeys, service: AppConfigService = Depends(get_app_config_service)) -> AppKeysResponse:
    return service.save_keys(keys)


@router.get("", response_model=AppKeysResponse)
def get_keys(service: AppConfigService = Depends(get_app_config_service)) -> AppKeysResponse:
    try:
        return service.get_keys()
    except DomainException as exc:
        raise exc.to_http_exception()


@router.delete("", response_model=AppKeysResponse)
def disable_keys(service: AppConfigService = Depends(get_app_config_service)) -> AppKeysResponse:
    try:
        return service.disable()
    except DomainException as exc:
        raise exc.to_http_exception()
