"""
Switchyard Conference Service.

Derives the dominant speaker and gallery geometry from the reconciled
participant store, and gates participant controls on role and identity.
"""
from __future__ import annotations

from conference.active_speaker import ActiveSpeakerDetector
from conference.gallery_layout import GalleryLayout, GridLayout, LayoutMode, compute_layout
from conference.participant_controls import ParticipantControls

__all__ = [
    "ActiveSpeakerDetector",
    "GalleryLayout",
    "GridLayout",
    "LayoutMode",
    "ParticipantControls",
    "compute_layout",
]
