"""Tests for the controller loop: state ownership, policies, codec budget."""

import itertools
from dataclasses import replace

import pytest

from fec_lab.codec.cost import CodecCost
from fec_lab.controller.adaptive import AdaptiveFecController, NoFeasiblePolicy
from fec_lab.controller.base import Hold, Switch
from fec_lab.controller.fixed import FixedFecController
from fec_lab.errors import NoFeasibleCandidate
from fec_lab.model.config import AxisSpec, FecConfig, GridBounds, ScoringConstants
from fec_lab.model.types import CandidateConfig


def _small_cfg(**kw):
    grid = GridBounds(n=AxisSpec.of(20), s=AxisSpec.of(512), r=AxisSpec.of(0.1, 0.3))
    return FecConfig(grid=grid, **kw)


def _clock():
    ticks = itertools.count(1000, 1000)
    return lambda: next(ticks)


class TestDecisionSequence:

    def test_switch_dwell_switch(self, make_signals):
        ctrl = AdaptiveFecController(_small_cfg(), clock=_clock())
        assert ctrl.active == CandidateConfig(20, 512, 0.1)

        # lossy link: more redundancy wins by a wide margin
        d0 = ctrl.decide(0, make_signals(p=0.1))
        assert isinstance(d0.outcome, Switch)
        assert d0.config == CandidateConfig(20, 512, 0.3)
        assert d0.extra["reason"] == "switch"
        assert ctrl.state.segments_since_switch == 0
        assert ctrl.state.last_switch_ms == 1000

        # clean link: less redundancy is better, but the dwell blocks the very next step
        d1 = ctrl.decide(1, make_signals(p=0.0))
        assert d1.outcome.reason == "dwell"
        assert d1.config == CandidateConfig(20, 512, 0.3)
        assert d1.outcome.best.candidate == CandidateConfig(20, 512, 0.1)
        assert ctrl.state.segments_since_switch == 1

        d2 = ctrl.decide(2, make_signals(p=0.0))
        assert d2.switched
        assert d2.config == CandidateConfig(20, 512, 0.1)
        assert ctrl.state.last_switch_ms == 3000

        d3 = ctrl.decide(3, make_signals(p=0.0))
        assert d3.outcome == Hold(reason="active_is_best", best=d3.evaluations[0])

    def test_evaluations_cover_active_and_grid(self, make_signals):
        ctrl = AdaptiveFecController(_small_cfg(), initial=CandidateConfig(20, 512, 0.2))
        d = ctrl.decide(0, make_signals())
        keys = [e.candidate.key() for e in d.evaluations]
        assert keys == [(20, 512, 0.2), (20, 512, 0.1), (20, 512, 0.3)]
        assert d.extra["num_candidates"] == 3

    def test_default_grid_picks_min_score_or_holds(self, make_signals):
        ctrl = AdaptiveFecController()
        d = ctrl.decide(0, make_signals(p=0.08, buffer_s=1.5))
        feasible = [e for e in d.evaluations if e.feasible]
        assert len(d.evaluations) == 125
        if d.switched:
            assert d.outcome.breakdown.score == pytest.approx(min(e.score for e in feasible))
        else:
            assert d.outcome.reason in ("hysteresis", "active_is_best")

    def test_no_signals_holds(self):
        ctrl = AdaptiveFecController(_small_cfg())
        d = ctrl.decide(0, None)
        assert d.outcome == Hold(reason="no_signals")
        assert d.evaluations == ()
        assert ctrl.state.segments_since_switch == 1

    def test_config_initial_is_used(self, make_signals):
        ctrl = AdaptiveFecController(_small_cfg(initial=CandidateConfig(20, 512, 0.3)))
        assert ctrl.active == CandidateConfig(20, 512, 0.3)


class TestNoFeasiblePolicy:

    @pytest.fixture
    def cfg(self):
        return _small_cfg(constants=replace(ScoringConstants(), o_cap=0.01))

    def test_hold_policy_keeps_active(self, cfg, make_signals):
        ctrl = AdaptiveFecController(cfg, no_feasible_policy=NoFeasiblePolicy.HOLD)
        d = ctrl.decide(0, make_signals(c=cfg.constants))
        assert d.outcome == Hold(reason="no_feasible")
        assert d.config == CandidateConfig(20, 512, 0.1)
        assert d.extra["num_feasible"] == 0
        assert ctrl.state.segments_since_switch == 2

    def test_raise_policy(self, cfg, make_signals):
        ctrl = AdaptiveFecController(cfg, no_feasible_policy="raise")
        with pytest.raises(NoFeasibleCandidate):
            ctrl.decide(0, make_signals(c=cfg.constants))
        assert ctrl.active == CandidateConfig(20, 512, 0.1)
        assert ctrl.state.last_switch_ms is None


class TestCodecBudget:

    def test_budget_vetoes_large_blocks(self, make_signals):
        cfg = FecConfig(grid=GridBounds(n=AxisSpec.of(20), s=AxisSpec.of(64, 512), r=AxisSpec.of(0.3)))
        cost = CodecCost("X", enc_s_per_byte=1e-6, dec_s_per_byte=0.0)
        ctrl = AdaptiveFecController(
            cfg, initial=CandidateConfig(20, 512, 0.3), codec_cost=cost, codec_budget_s=0.005
        )
        d = ctrl.decide(0, make_signals())
        assert d.config == CandidateConfig(20, 64, 0.3)
        assert d.extra["old_feasible"] is False
        assert d.extra["codec"]["algo"] == "X"
        assert d.extra["codec"]["encode_s"] == pytest.approx(1280e-6)

    def test_non_positive_budget_rejected(self):
        with pytest.raises(ValueError):
            AdaptiveFecController(codec_cost=CodecCost("X", 1e-9, 1e-9), codec_budget_s=0.0)


class TestFixedController:

    def test_never_switches(self, make_signals):
        cfg = CandidateConfig(20, 512, 0.3)
        ctrl = FixedFecController(cfg)
        for step, p in enumerate((0.0, 0.2, 0.5)):
            d = ctrl.decide(step, make_signals(p=p))
            assert d.config == cfg
            assert not d.switched
            assert d.outcome.reason == "fixed"
            assert len(d.evaluations) == 1

    def test_no_signals(self):
        d = FixedFecController(CandidateConfig(20, 512, 0.3)).decide(0, None)
        assert d.evaluations == ()
