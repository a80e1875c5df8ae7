from .checks import (
    ProblemDetails,
    assert_content_media_type,
    assert_error_response,
    assert_registration_info,
    assert_status_code,
    assert_validation_response,
    create_thing,
    delete_thing,
    retrieve_all_things,
    retrieve_thing,
    thing_id_from_location,
    update_thing,
)
from .client import DirectoryClient, MediaType
from .config import HarnessConfig, load_config
from .events import Event, EventSubscription, SubscriptionError

__all__ = [
    'DirectoryClient','MediaType','HarnessConfig','load_config',
    'Event','EventSubscription','SubscriptionError','ProblemDetails',
    'assert_status_code','assert_content_media_type','assert_error_response','assert_validation_response',
    'assert_registration_info','create_thing','retrieve_thing','update_thing','delete_thing',
    'retrieve_all_things','thing_id_from_location',
]
