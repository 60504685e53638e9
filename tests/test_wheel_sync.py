"""Wheel animation target: forward-only rotation landing inside the winning segment."""

import random

import pytest

from app.services import wheel_sync


class TestTargetAngle:
    @pytest.mark.parametrize("segment_count", [1, 2, 7, 8, 12])
    def test_always_forward_and_lands_on_winner(self, segment_count):
        rng = random.Random(42)
        for _ in range(500):
            index = rng.randrange(segment_count)
            current = rng.uniform(-2000.0, 20000.0)
            final = wheel_sync.target_angle(index, segment_count, current, rng=rng)

            assert final > current
            assert wheel_sync.landed_segment(final, segment_count) == index

    def test_adds_at_least_two_full_turns(self):
        rng = random.Random(0)
        for current in (0.0, 45.0, 359.9, 720.0, 1234.5):
            final = wheel_sync.target_angle(3, 8, current, rng=rng)
            assert final - current >= 2 * 360.0

    def test_stop_point_stays_away_from_boundaries(self):
        rng = random.Random(5)
        seg = 360.0 / 8
        for _ in range(200):
            final = wheel_sync.target_angle(2, 8, 0.0, rng=rng)
            offset = ((-final) % 360.0) - 2 * seg
            assert 0.1 * seg - 1e-6 <= offset <= 0.9 * seg + 1e-6

    def test_sequential_spins_keep_moving_forward(self):
        rng = random.Random(9)
        rotation = 0.0
        for index in [0, 7, 3, 3, 5, 1]:
            final = wheel_sync.target_angle(index, 8, rotation, rng=rng)
            assert final > rotation
            rotation = final

    @pytest.mark.parametrize(
        "index, count, turns",
        [(8, 8, 2), (-1, 8, 2), (0, 0, 2), (0, 8, 1)],
    )
    def test_rejects_bad_arguments(self, index, count, turns):
        with pytest.raises(ValueError):
            wheel_sync.target_angle(index, count, 0.0, extra_turns=turns)


class TestAnimationPlan:
    def test_ease_out_is_monotonic(self):
        values = [wheel_sync.ease_out_cubic(i / 100) for i in range(101)]
        assert values[0] == 0.0
        assert values[-1] == 1.0
        assert all(b >= a for a, b in zip(values, values[1:]))

    def test_duration_has_a_floor(self):
        plan = wheel_sync.plan_spin_animation(1, 8, 0.0, duration_seconds=0.5)
        assert plan.duration_seconds >= 2.5

    def test_rotation_at_runs_from_start_to_final(self):
        plan = wheel_sync.plan_spin_animation(4, 8, 90.0, rng=random.Random(1))
        assert plan.rotation_at(0.0) == plan.start_rotation
        assert plan.rotation_at(plan.duration_seconds) == pytest.approx(plan.final_rotation)
        assert plan.rotation_at(plan.duration_seconds * 10) == pytest.approx(plan.final_rotation)
        assert plan.is_finished(plan.duration_seconds)
        assert not plan.is_finished(plan.duration_seconds / 2)
        assert wheel_sync.landed_segment(plan.final_rotation, 8) == 4
