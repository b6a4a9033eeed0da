"""HTTP routers, one per feature area."""

from . import (
    account,
    achievements,
    communities,
    health,
    leaderboard,
    progress,
    quests,
    quizzes,
    study,
)

ROUTERS = (
    study.router,
    quizzes.router,
    achievements.router,
    progress.router,
    leaderboard.router,
    quests.router,
    communities.router,
    account.router,
    health.router,
)

__all__ = ["ROUTERS"]
