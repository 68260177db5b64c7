VERSION = "0.1.0"

from loguru import logger

from ._ds import ActionDescriptor as ActionDescriptor
from ._ds import ParameterSpec as ParameterSpec
from .client import HttpxTransport as HttpxTransport
from .client import RestClient as RestClient
from .coercion import BindingPolicy as BindingPolicy
from .coercion import ParamCoercer as ParamCoercer
from .coercion import UploadedFile as UploadedFile
from .coercion import UploadStatus as UploadStatus
from .config import DispatchConfig as DispatchConfig
from .dispatcher import Dispatcher as Dispatcher
from .envelope import Failure as Failure
from .envelope import Success as Success
from .envelope import encode_envelope as encode_envelope
from .Interface import MISSING as MISSING
from .Interface import VOID as VOID
from .Interface import ParamKind as ParamKind
from .record import FormRecord as FormRecord
from .registry import ActionRegistry as ActionRegistry
from .registry import rpc_action as rpc_action
from .request import RequestState as RequestState
from .translator import ErrorTranslator as ErrorTranslator

logger.disable("rpcwise")
