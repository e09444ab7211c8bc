"""Tests for the candidate scorer: worked vector, penalty shapes, numeric guards."""

import math
import random
from dataclasses import replace

import pytest

from fec_lab.model.config import ScoringConstants
from fec_lab.model.types import CandidateConfig
from fec_lab.scoring.scorer import loss_z, score, score_candidate


# ===========================================================================
# Reference vector
# ===========================================================================


class TestWorkedScenario:
    """N=20, S=512, R=0.30 with p=0.05, B=2s, G=2Mbps, R_play=1Mbps."""

    @pytest.fixture
    def bd(self, constants, make_signals):
        return score(CandidateConfig(20, 512, 0.30), make_signals(), constants)

    def test_derived_quantities(self, bd):
        assert bd.p_sym == 6
        assert bd.t_sym == 26
        assert bd.o == pytest.approx(6 / 26)
        assert bd.b_blk == 13312

    def test_signals(self, make_signals):
        sig = make_signals()
        assert sig.headroom == pytest.approx(1.0)
        assert sig.b_eff == pytest.approx(2.0)

    def test_loss_terms(self, bd):
        assert bd.z == pytest.approx(5.2 / math.sqrt(1.235))
        assert bd.z == pytest.approx(4.67918, abs=1e-4)
        assert bd.z_tgt == pytest.approx(1.75)
        assert bd.pen_loss == 0.0

    def test_overhead_terms(self, bd):
        assert bd.o_free == pytest.approx(0.19)
        assert bd.o_ex == pytest.approx(53 / 1300)
        assert bd.pen_over == pytest.approx((53 / 1300) ** 2)

    def test_block_terms(self, bd):
        assert bd.t_blk == pytest.approx(0.053248)
        assert bd.pen_blk == 0.0

    def test_weights_and_score(self, bd):
        assert bd.w_loss == pytest.approx(1.5)
        assert bd.w_over == pytest.approx(11 / 12)
        assert bd.w_blk == pytest.approx(5 / 6)
        assert bd.score == pytest.approx((11 / 12) * (53 / 1300) ** 2)
        assert bd.score == pytest.approx(0.0015236, rel=1e-4)

    def test_scenario_is_feasible(self, constants, make_signals):
        bd = score_candidate(CandidateConfig(20, 512, 0.30), make_signals(), constants)
        assert bd.feasible is True


# ===========================================================================
# Loss penalty
# ===========================================================================


class TestLossPenalty:

    def test_pen_loss_non_decreasing_in_p_until_tp_exceeds_p(self, constants, make_signals):
        cand = CandidateConfig(20, 512, 0.30)  # P=6, T=26
        # low buffer and zero headroom keep z_tgt fixed and large
        limit = cand.repair_symbols / cand.total_symbols
        ps = [limit * k / 200 for k in range(1, 201)]
        pens = [
            score(cand, make_signals(p=p, buffer_s=0.5, goodput_bps=1e6, playback_bps=1e6), constants).pen_loss
            for p in ps
        ]
        assert pens[-1] > 0.0
        for a, b in zip(pens, pens[1:]):
            assert b >= a - 1e-12

    def test_z_target_does_not_depend_on_p(self, constants, make_signals):
        cand = CandidateConfig(20, 512, 0.30)
        z_tgts = {score(cand, make_signals(p=p), constants).z_tgt for p in (0.0, 0.01, 0.1, 0.3)}
        assert len(z_tgts) == 1

    @pytest.mark.parametrize("p", [0.0, 1.0])
    def test_zero_variance_uses_floor(self, constants, make_signals, p):
        bd = score(CandidateConfig(20, 512, 0.30), make_signals(p=p), constants)
        assert math.isfinite(bd.z)
        expected = (6 + 0.5 - 26 * p) / math.sqrt(constants.eps_var)
        assert bd.z == pytest.approx(expected)

    def test_low_buffer_raises_target(self, constants, make_signals):
        cand = CandidateConfig(20, 512, 0.10)
        high = score(cand, make_signals(p=0.1, buffer_s=5.0), constants)
        low = score(cand, make_signals(p=0.1, buffer_s=0.5), constants)
        assert low.z_tgt > high.z_tgt
        assert low.pen_loss > high.pen_loss

    def test_loss_z_helper(self):
        assert loss_z(6, 26, 0.05, 1e-6) == pytest.approx(5.2 / math.sqrt(1.235))


# ===========================================================================
# Overhead penalty
# ===========================================================================


class TestOverheadPenalty:

    def test_strictly_increasing_above_free_overhead(self, constants, make_signals):
        sig = make_signals()
        prev = None
        for r in (0.30, 0.35, 0.40, 0.45):
            bd = score(CandidateConfig(100, 512, r), sig, constants)
            assert bd.o > bd.o_free
            if prev is not None:
                assert bd.pen_over > prev
            prev = bd.pen_over

    def test_zero_below_free_overhead(self, constants, make_signals):
        bd = score(CandidateConfig(20, 512, 0.10), make_signals(), constants)
        assert bd.o < bd.o_free
        assert bd.o_ex == 0.0
        assert bd.pen_over == 0.0

    def test_free_overhead_is_capped(self, constants, make_signals):
        c = replace(constants, o0=0.9, o_cap=0.4)
        bd = score(CandidateConfig(20, 512, 0.30), make_signals(c=c), c)
        assert bd.o_free == pytest.approx(0.4)


# ===========================================================================
# Block / latency penalty
# ===========================================================================


class TestBlockPenalty:

    def test_zero_when_ratio_within_eta(self, constants, make_signals):
        bd = score(CandidateConfig(20, 512, 0.30), make_signals(goodput_bps=10e6), constants)
        assert bd.t_blk / 2.0 <= constants.eta
        assert bd.pen_blk == 0.0

    def test_saturates_at_one(self, constants, make_signals):
        bd = score(CandidateConfig(50, 512, 0.50), make_signals(goodput_bps=1.0), constants)
        assert bd.pen_blk == 1.0

    def test_zero_goodput_is_guarded(self, constants, make_signals):
        bd = score(CandidateConfig(20, 512, 0.30), make_signals(goodput_bps=0.0), constants)
        assert math.isfinite(bd.t_blk)
        assert bd.pen_blk == 1.0

    def test_zero_buffer_saturates(self, constants, make_signals):
        bd = score(CandidateConfig(10, 64, 0.10), make_signals(buffer_s=0.0, goodput_bps=1e9), constants)
        assert bd.pen_blk == 1.0

    def test_never_exceeds_one(self, constants, make_signals):
        rng = random.Random(7)
        for _ in range(300):
            cand = CandidateConfig(rng.randint(1, 200), rng.randint(1, 2000), rng.uniform(0.0, 1.0))
            sig = make_signals(
                p=rng.uniform(0, 1),
                buffer_s=rng.uniform(0, 10),
                goodput_bps=rng.uniform(0, 5e6),
                playback_bps=rng.uniform(1e4, 5e6),
            )
            bd = score(cand, sig, constants)
            assert 0.0 <= bd.pen_blk <= 1.0
            assert bd.score >= 0.0


# ===========================================================================
# Weights, constants, determinism
# ===========================================================================


class TestWeights:

    def test_negative_headroom_raises_block_weight(self, constants, make_signals):
        cand = CandidateConfig(20, 512, 0.30)
        pos = score(cand, make_signals(goodput_bps=2e6), constants)
        neg = score(cand, make_signals(goodput_bps=0.5e6), constants)
        assert neg.w_blk == pytest.approx(pos.w_blk + 0.5 * constants.lambda_h_neg)

    def test_overhead_weight_floor_at_zero_goodput(self, make_signals):
        # lambda_h == w_over_min is the largest accepted lambda_h
        c = replace(ScoringConstants(), lambda_h=0.5, w_over_min=0.5)
        bd = score(CandidateConfig(20, 512, 0.50), make_signals(buffer_s=0.0, goodput_bps=0.0, c=c), c)
        assert bd.w_over == pytest.approx(0.0)
        assert bd.score >= 0.0

    def test_loss_weight_caps_p(self, constants, make_signals):
        bd = score(CandidateConfig(20, 512, 0.30), make_signals(p=0.9), constants)
        assert bd.w_loss == pytest.approx(constants.w_loss_min + constants.lambda_p * constants.p_cap)

    def test_constants_drive_result(self, constants, make_signals):
        cand = CandidateConfig(20, 512, 0.30)
        c = replace(constants, alpha=1.0)
        bd = score(cand, make_signals(c=c), c)
        assert bd.pen_over == pytest.approx(53 / 1300)


class TestDeterminism:

    def test_repeated_calls_identical(self, constants, make_signals):
        cand = CandidateConfig(30, 250, 0.2)
        sig = make_signals(p=0.12, buffer_s=1.3)
        first = score_candidate(cand, sig, constants)
        for _ in range(5):
            again = score_candidate(cand, sig, constants)
            assert again == first
            assert repr(again.as_dict()) == repr(first.as_dict())
