"""Team capacity per iteration: availability, usable share and utilization."""

import logging
import statistics

from artplan.config import ARTPlanningConfig
from artplan.models.plan import CapacityUtilization
from artplan.models.work_items import ARTTeam, Iteration, IterationCapacity

logger = logging.getLogger(__name__)

# Team confidence adjustments
BASE_TEAM_CONFIDENCE = 0.9
LOW_VELOCITY = 10
SMALL_TEAM = 3
LARGE_TEAM = 10
MIN_TEAM_CONFIDENCE = 0.3

# Utilization thresholds used for recommendations
LOW_UTILIZATION = 0.6
IMBALANCE_DEVIATION = 0.3
HIGH_OVERALL_UTILIZATION = 0.9
LOW_OVERALL_UTILIZATION = 0.5

_EPSILON = 1e-9


class CapacityManager:
    """Derives iteration capacity for teams and measures how much is used.

    Available capacity comes from the iteration's capacity entry when one is
    given, otherwise from the team's velocity scaled by its capacity factor
    and the iteration length. Usable capacity holds the planning buffer back
    and never exceeds max_capacity_utilization of what is available.
    """

    def __init__(self, config: ARTPlanningConfig | None = None):
        self.config = config or ARTPlanningConfig()

    def team_confidence(self, team: ARTTeam) -> float:
        """How far a team's historical velocity can be trusted (0.3-1.0)."""
        confidence = BASE_TEAM_CONFIDENCE
        if team.average_velocity < LOW_VELOCITY:
            confidence -= 0.1
        if team.member_count < SMALL_TEAM:
            confidence -= 0.15
        if team.member_count > LARGE_TEAM:
            confidence -= 0.1
        if not team.specializations:
            confidence -= 0.05
        return round(max(MIN_TEAM_CONFIDENCE, min(1.0, confidence)), 4)

    def team_risks(self, team: ARTTeam) -> list[str]:
        risks = []
        if team.average_velocity < LOW_VELOCITY:
            risks.append(f"Team {team.display_name} has low historical velocity")
        if team.member_count < SMALL_TEAM:
            risks.append(f"Team {team.display_name} is very small ({team.member_count} members)")
        if team.member_count > LARGE_TEAM:
            risks.append(f"Team {team.display_name} is very large ({team.member_count} members)")
        if not team.specializations:
            risks.append(f"Team {team.display_name} has no defined specializations")
        return risks

    def validate_team(self, team: ARTTeam) -> list[str]:
        """Data quality problems in a team record."""
        issues = []
        if team.average_velocity <= 0:
            issues.append(f"Team {team.display_name} has no average velocity")
        if team.member_count <= 0:
            issues.append(f"Team {team.display_name} has no members")
        if team.member_count and team.average_velocity > team.member_count * 10:
            issues.append(
                f"Team {team.display_name} has unusually high velocity ({team.average_velocity:g}) "
                f"for team size ({team.member_count})"
            )
        return issues

    def build_iteration_capacity(
        self, team: ARTTeam, iteration_days: int | None = None
    ) -> IterationCapacity:
        """Capacity entry derived from team velocity.

        Args:
            team: Team to derive capacity for
            iteration_days: Iteration length; scales velocity against the configured length

        Returns:
            IterationCapacity with available = velocity * capacity_factor * length factor
        """
        days = iteration_days or self.config.iteration_length_days
        duration_factor = days / self.config.iteration_length_days
        total = team.average_velocity * duration_factor
        return IterationCapacity(
            team_id=team.id,
            team_name=team.display_name,
            total_capacity=round(total, 4),
            available_capacity=round(total * team.capacity_factor, 4),
            team_size=team.member_count,
            average_velocity=team.average_velocity,
            confidence_factor=self.team_confidence(team),
        )

    def capacity_for(self, iteration: Iteration, team: ARTTeam) -> IterationCapacity:
        """The iteration's entry for the team, or one derived from velocity."""
        entry = iteration.capacity_for(team.id)
        if entry is not None:
            return entry
        built = self.build_iteration_capacity(team, iteration.duration_days)
        logger.debug(
            f"No capacity entry for team {team.id} in {iteration.id}; "
            f"derived {built.available:g} pts from velocity"
        )
        return built

    def usable_capacity(self, capacity: IterationCapacity) -> float:
        return round(capacity.available * self.config.usable_capacity_ratio, 4)

    def utilization(self, capacity: IterationCapacity, allocated: float) -> CapacityUtilization:
        usable = self.usable_capacity(capacity)
        rate = allocated / usable if usable > 0 else 0.0
        return CapacityUtilization(
            team_id=capacity.team_id,
            total_capacity=capacity.total_capacity,
            usable_capacity=usable,
            allocated_capacity=allocated,
            utilization_rate=round(rate, 4),
            is_over_allocated=allocated > usable + _EPSILON,
            buffer_capacity=round(capacity.available - usable, 4),
        )

    def recommendations(self, utilizations: list[CapacityUtilization]) -> list[str]:
        """Capacity advice for a set of team utilizations."""
        if not utilizations:
            return []
        recommendations = []
        over = [u for u in utilizations if u.is_over_allocated]
        under = [u for u in utilizations if u.utilization_rate < LOW_UTILIZATION]
        if over:
            recommendations.append(
                f"{len(over)} teams are over-allocated - consider redistributing work"
            )
        if under:
            recommendations.append(
                f"{len(under)} teams have low utilization - "
                "consider additional work or cross-training"
            )

        rates = [u.utilization_rate for u in utilizations]
        average = sum(rates) / len(rates)
        if max(abs(rate - average) for rate in rates) > IMBALANCE_DEVIATION:
            recommendations.append(
                "Large capacity imbalance detected - consider rebalancing work across teams"
            )

        demand = sum(u.allocated_capacity for u in utilizations)
        usable = sum(u.usable_capacity for u in utilizations)
        overall = demand / usable if usable > 0 else 0.0
        if overall > HIGH_OVERALL_UTILIZATION:
            recommendations.append(
                "Overall capacity utilization is very high - "
                "consider reducing scope or adding capacity"
            )
        elif overall < LOW_OVERALL_UTILIZATION:
            recommendations.append(
                "Overall capacity utilization is low - consider adding more work"
            )
        return recommendations

    @staticmethod
    def metrics(utilizations: list[CapacityUtilization]) -> dict[str, float]:
        """Average, spread and totals of utilization for reporting."""
        if not utilizations:
            return {
                "average_utilization": 0.0,
                "max_utilization": 0.0,
                "min_utilization": 0.0,
                "utilization_std_dev": 0.0,
                "over_allocated_teams": 0,
                "usable_capacity": 0.0,
                "allocated_capacity": 0.0,
            }
        rates = [u.utilization_rate for u in utilizations]
        return {
            "average_utilization": sum(rates) / len(rates),
            "max_utilization": max(rates),
            "min_utilization": min(rates),
            "utilization_std_dev": statistics.pstdev(rates),
            "over_allocated_teams": sum(1 for u in utilizations if u.is_over_allocated),
            "usable_capacity": sum(u.usable_capacity for u in utilizations),
            "allocated_capacity": sum(u.allocated_capacity for u in utilizations),
        }
