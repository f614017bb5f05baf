"""
PJSIP synchronizer: endpoints, their registered contacts, and outbound
registrations.

``Endpoint.contacts`` is a back-reference set recomputed from the contact
store whenever a contact changes or a contact/endpoint snapshot lands.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog

from sy_common.models.base import utc_now
from sy_common.models.pjsip import (
    Contact,
    ContactStatus,
    Endpoint,
    EndpointStatus,
    OutboundRegistration,
    RegistrationStatus,
)
from sy_common.models.results import ActionResult

from reconciler.parsing import Delta, SkipRecord, as_epoch, as_int, pick, require, text
from reconciler.synchronizer import ResourceSynchronizer, SnapshotSpec

logger = structlog.get_logger()

ENDPOINTS = "endpoints"
CONTACTS = "contacts"
REGISTRATIONS = "registrations"

_DEVICE_PREFIX = "PJSIP/"


def _rtt_ms(value: str) -> float | None:
    usec = as_int(value, default=-1)
    return usec / 1000 if usec >= 0 else None


def _contact_status(value: str) -> ContactStatus:
    value = value.strip().lower()
    if value in ("reachable", "created", "updated", "avail"):
        return ContactStatus.REACHABLE
    if value in ("unreachable", "unavail"):
        return ContactStatus.UNREACHABLE
    return ContactStatus.UNKNOWN


def _registration_status(value: str) -> RegistrationStatus:
    value = value.strip().lower()
    if value == "registered":
        return RegistrationStatus.REGISTERED
    if value == "rejected":
        return RegistrationStatus.REJECTED
    return RegistrationStatus.UNREGISTERED


def parse_endpoint(payload: Mapping[str, str]) -> Delta | None:
    name = require(payload, "ObjectName")
    if name is None:
        return None
    fields = pick(
        payload,
        {
            "DeviceState": ("device_state", text),
            "Transport": ("transport", text),
            "Aor": ("aor", text),
            "ActiveChannels": ("active_channels", as_int),
        },
    )
    return Delta(name, scope=name, fields=fields)


def parse_contact_list(payload: Mapping[str, str]) -> Delta | None:
    """Decode a ``ContactList`` snapshot record."""
    uri = require(payload, "Uri")
    if uri is None:
        return None
    endpoint = require(payload, "EndpointName") or require(payload, "Endpoint") or ""
    fields = pick(
        payload,
        {
            "UserAgent": ("user_agent", text),
            "ExpirationTime": ("expires_at", as_epoch),
            "RoundtripUsec": ("round_trip_time_ms", _rtt_ms),
            "Status": ("status", _contact_status),
        },
    )
    object_name = payload.get("ObjectName", "")
    if "AOR" in payload:
        fields["aor"] = text(payload["AOR"])
    elif object_name:
        fields["aor"] = object_name.split("/")[0]
    fields["endpoint_id"] = endpoint
    return Delta(uri, scope=endpoint or None, fields=fields)


def parse_contact_status(payload: Mapping[str, str]) -> Delta | None:
    """Decode a ``ContactStatus`` event; ``fields`` is empty for removals."""
    uri = require(payload, "URI")
    if uri is None:
        return None
    endpoint = require(payload, "EndpointName") or ""
    if payload.get("ContactStatus", "").strip() == "Removed":
        return Delta(uri, scope=endpoint or None)
    fields = pick(
        payload,
        {
            "AOR": ("aor", text),
            "UserAgent": ("user_agent", text),
            "RegExpire": ("expires_at", as_epoch),
            "RoundtripUsec": ("round_trip_time_ms", _rtt_ms),
            "ContactStatus": ("status", _contact_status),
        },
    )
    fields["endpoint_id"] = endpoint
    return Delta(uri, scope=endpoint or None, fields=fields)


def parse_device_state(payload: Mapping[str, str]) -> Delta | None:
    device = require(payload, "Device")
    if device is None:
        return None
    if not device.startswith(_DEVICE_PREFIX):
        raise SkipRecord(device)
    name = device[len(_DEVICE_PREFIX):]
    state = require(payload, "State") or "UNKNOWN"
    return Delta(name, scope=name, fields={"device_state": state.upper()})


def parse_registration(payload: Mapping[str, str]) -> Delta | None:
    name = require(payload, "ObjectName")
    if name is None:
        return None
    fields = pick(
        payload,
        {
            "ServerUri": ("server_uri", text),
            "ClientUri": ("client_uri", text),
            "Status": ("status", _registration_status),
            "Expiration": ("expiration", lambda v: as_int(v, default=3600)),
        },
    )
    return Delta(name, fields=fields)


class PjsipSynchronizer(ResourceSynchronizer):
    """Keeps PJSIP endpoints, contacts and outbound registrations in sync.

    Args:
        session: Session reference (see :class:`ResourceSynchronizer`).
        include_registrations: Also list outbound registrations on refresh.
        **kwargs: Forwarded to :class:`ResourceSynchronizer`.
    """

    resource = "pjsip"

    def __init__(self, session: Any = None, *, include_registrations: bool = False, **kwargs: Any) -> None:
        self.include_registrations = include_registrations
        super().__init__(session, **kwargs)

    def _configure(self) -> None:
        self.endpoints = self.add_store(ENDPOINTS, Endpoint)
        self.contacts = self.add_store(CONTACTS, Contact)
        self.registrations = self.add_store(REGISTRATIONS, OutboundRegistration)

        self.add_snapshot(
            ENDPOINTS,
            SnapshotSpec(
                action="PJSIPShowEndpoints",
                store=ENDPOINTS,
                parse=parse_endpoint,
                item_event="EndpointList",
            ),
        )
        self.add_snapshot(
            CONTACTS,
            SnapshotSpec(
                action="PJSIPShowContacts",
                store=CONTACTS,
                parse=parse_contact_list,
                item_event="ContactList",
                scope_arg="Endpoint",
                scope_field="endpoint_id",
            ),
        )
        self.add_snapshot(
            REGISTRATIONS,
            SnapshotSpec(
                action="PJSIPShowRegistrationsOutbound",
                store=REGISTRATIONS,
                parse=parse_registration,
                item_event="OutboundRegistrationDetail",
            ),
        )

        self.on_event("ContactStatus", parse_contact_status, self._contact_status, stores=(CONTACTS, ENDPOINTS))
        self.on_event("DeviceStateChange", parse_device_state, self._device_state, stores=(ENDPOINTS,))

    # ── event handlers ──

    def _contact_status(self, delta: Delta) -> None:
        previous = self.contacts.get(delta.entity_id)
        if not delta.fields:
            if previous is not None:
                self.contacts.remove(delta.entity_id)
                self._relink(previous.endpoint_id)
            return

        contact = self.contacts.upsert(delta.entity_id, delta.fields)
        if previous is not None and previous.endpoint_id != contact.endpoint_id:
            self._relink(previous.endpoint_id)
        self._relink(contact.endpoint_id, create=True)

    def _device_state(self, delta: Delta) -> None:
        endpoint = self.endpoints.get(delta.entity_id)
        if endpoint is None or endpoint.device_state == delta.fields["device_state"]:
            return
        self.endpoints.upsert(delta.entity_id, {**delta.fields, "updated_at": utc_now()})
        logger.debug(
            "endpoint_state_changed",
            endpoint=delta.entity_id,
            device_state=delta.fields["device_state"],
        )

    # ── back-references ──

    def _relink(self, endpoint_id: str, *, create: bool = False) -> None:
        if not endpoint_id:
            return
        if endpoint_id not in self.endpoints and not create:
            return
        linked = frozenset(c.id for c in self.contacts.filter(lambda c: c.endpoint_id == endpoint_id))
        self.endpoints.upsert(endpoint_id, {"contacts": linked})

    def _after_snapshot(self, kind: str, scope: str | None) -> None:
        if kind == CONTACTS and scope is not None:
            self._relink(scope, create=True)
        elif kind in (CONTACTS, ENDPOINTS):
            for endpoint_id in self.endpoints.ids():
                self._relink(endpoint_id)
            if kind == CONTACTS:
                for contact in self.contacts:
                    self._relink(contact.endpoint_id, create=True)

    # ── snapshots ──

    async def list_endpoints(self) -> list[Endpoint]:
        return await self.refresh_list(ENDPOINTS)

    async def list_contacts(self, endpoint_id: str | None = None) -> list[Contact]:
        return await self.refresh_list(CONTACTS, endpoint_id)

    async def list_registrations(self) -> list[OutboundRegistration]:
        return await self.refresh_list(REGISTRATIONS)

    async def refresh(self) -> None:
        await self.refresh_list(ENDPOINTS)
        await self.refresh_list(CONTACTS)
        if self.include_registrations:
            await self.refresh_list(REGISTRATIONS)

    # ── actions ──

    async def qualify(self, endpoint_id: str) -> ActionResult:
        return await self.invoke("PJSIPQualify", {"Endpoint": endpoint_id}, target_id=endpoint_id)

    async def qualify_all(self) -> list[ActionResult]:
        """Qualify every known endpoint concurrently; failures become results."""
        ids = self.endpoints.ids()
        outcomes = await asyncio.gather(*(self.qualify(i) for i in ids), return_exceptions=True)
        results: list[ActionResult] = []
        for endpoint_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                results.append(ActionResult(success=False, id=endpoint_id, error=str(outcome)))
            else:
                results.append(outcome)
        return results

    async def register(self, registration_id: str) -> ActionResult:
        return await self._registration_action("PJSIPRegister", registration_id, RegistrationStatus.REGISTERED)

    async def unregister(self, registration_id: str) -> ActionResult:
        return await self._registration_action(
            "PJSIPUnregister",
            registration_id,
            RegistrationStatus.UNREGISTERED,
        )

    async def _registration_action(
        self,
        action: str,
        registration_id: str,
        status: RegistrationStatus,
    ) -> ActionResult:
        def _optimistic() -> None:
            if registration_id in self.registrations:
                self.registrations.upsert(registration_id, {"status": status})

        return await self.invoke(
            action,
            {"Registration": registration_id},
            target_id=registration_id,
            optimistic=_optimistic,
        )

    # ── views ──

    @property
    def online_endpoints(self) -> list[Endpoint]:
        return self.endpoints.filter(lambda e: e.status != EndpointStatus.UNAVAILABLE)

    @property
    def offline_endpoints(self) -> list[Endpoint]:
        return self.endpoints.filter(lambda e: e.status == EndpointStatus.UNAVAILABLE)

    @property
    def stats(self) -> dict[str, float]:
        endpoints = self.endpoints.all()
        total = len(endpoints)
        counts = {status: 0 for status in EndpointStatus}
        for endpoint in endpoints:
            counts[endpoint.status] += 1
        available = counts[EndpointStatus.AVAILABLE]
        return {
            "total": total,
            "available": available,
            "unavailable": counts[EndpointStatus.UNAVAILABLE],
            "busy": counts[EndpointStatus.BUSY],
            "ringing": counts[EndpointStatus.RINGING],
            "registration_rate": available / total if total else 0.0,
        }

    def contacts_of(self, endpoint_id: str) -> list[Contact]:
        return self.contacts.filter(lambda c: c.endpoint_id == endpoint_id)

    def is_registered(self, endpoint_id: str) -> bool:
        return bool(self.contacts_of(endpoint_id))

    def is_available(self, endpoint_id: str) -> bool:
        endpoint = self.endpoints.get(endpoint_id)
        return endpoint is not None and endpoint.status == EndpointStatus.AVAILABLE
