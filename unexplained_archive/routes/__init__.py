"""
unexplained_archive/routes/__init__.py
Route registration
"""
from fastapi import APIRouter

from unexplained_archive.routes import ai, boosts, cases, community, payments, teams, translation, verification, wallet

router = APIRouter()

# Case lifecycle
router.include_router(cases.router)
router.include_router(teams.router)
router.include_router(community.router)

# Money
router.include_router(wallet.router)
router.include_router(payments.router)
router.include_router(boosts.router)
router.include_router(verification.router)

# Translation and AI
router.include_router(translation.router)
router.include_router(ai.router)
