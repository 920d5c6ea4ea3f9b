"""
Cas d'usage 'customers': création du client backend pour la session.
- Single-flight: un double clic "continuer" ne crée pas deux clients
- Snapshot boulders_checkout_customer pour le retour de paiement
"""
import logging
from typing import Any, Dict, Optional

from checkout.errors import UnexpectedResponseShapeError
from checkout.infra.api_client import unwrap_data
from checkout.infra.session_storage import CUSTOMER_KEY
from . import repository

logger = logging.getLogger(__name__)

async def ensure_customer(session, customer: Dict[str, Any]) -> Any:
    if session.customer_id:
        return session.customer_id

    async def _create() -> Any:
        if session.customer_id:
            return session.customer_id
        data = dict(customer)
        if not data.get("businessUnit") and session.selected_business_unit:
            data["businessUnit"] = session.selected_business_unit
        created = unwrap_data(await repository.create_customer(session.api, data))
        customer_id: Optional[Any] = created.get("id") if isinstance(created, dict) else None
        if customer_id is None:
            raise UnexpectedResponseShapeError("Customer creation response did not contain a customer id")
        session.customer_id = customer_id
        session.customer_email = data.get("email") or session.customer_email
        await session.storage.set_json(
            session.session_id,
            CUSTOMER_KEY,
            {
                "id": customer_id,
                "email": session.customer_email,
                "firstName": data.get("firstName"),
                "lastName": data.get("lastName"),
                "primaryGym": session.selected_business_unit,
            },
        )
        logger.info("customers.service.ensure_customer created customer_id=%s sid=%s", customer_id, session.session_id)
        return customer_id

    return await session.flights.do(("customer", session.session_id), _create)
