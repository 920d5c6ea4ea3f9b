"""
Adaptateur de réponse "generate-link": formes acceptées, dans cet ordre:
  {"url"}, {"paymentLink"}, {"link"}, {"data": {"url"}}, {"data": {"paymentLink"}}, {"data": {"link"}}
Toute autre forme (ou valeur non http(s)) => UnexpectedResponseShapeError.
"""
from typing import Any

from checkout.errors import UnexpectedResponseShapeError

_KEYS = ("url", "paymentLink", "link")

def _is_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))

def extract_payment_link(response: Any) -> str:
    if isinstance(response, dict):
        for key in _KEYS:
            if _is_url(response.get(key)):
                return response[key]
        data = response.get("data")
        if isinstance(data, dict):
            for key in _KEYS:
                if _is_url(data.get(key)):
                    return data[key]
        keys = sorted(response.keys())
        data_keys = sorted(data.keys()) if isinstance(data, dict) else []
        raise UnexpectedResponseShapeError(f"Unrecognized payment link response: keys={keys} data_keys={data_keys}")
    raise UnexpectedResponseShapeError(f"Unrecognized payment link response type: {type(response).__name__}")
