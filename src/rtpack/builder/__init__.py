# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Public exports for the bundle directory builder."""

from __future__ import annotations

from .assets import AssetResult, AssetStatus, evaluate_asset, is_sensitive
from .core import BuildOutcome, BundleBuilder, default_build_id
from .producers import BundleSourceProducer, CopyPlanProducer, ProduceRequest, ScriptProducer, producers_for
from .skeleton import ISOLATED_DIRNAME, SKELETON_DIRS, create_skeleton

__all__ = [
    "AssetResult",
    "AssetStatus",
    "BuildOutcome",
    "BundleBuilder",
    "BundleSourceProducer",
    "CopyPlanProducer",
    "ISOLATED_DIRNAME",
    "ProduceRequest",
    "SKELETON_DIRS",
    "ScriptProducer",
    "create_skeleton",
    "default_build_id",
    "evaluate_asset",
    "is_sensitive",
    "producers_for",
]
