"""
Shared fixtures for fec_lab tests.
"""
import pytest

from fec_lab.model.config import ScoringConstants
from fec_lab.model.types import CandidateConfig, Evaluation, ScoreBreakdown, derive_signals


@pytest.fixture
def constants():
    return ScoringConstants()


@pytest.fixture
def make_signals(constants):
    def _make(p=0.05, buffer_s=2.0, goodput_bps=2_000_000.0, playback_bps=1_000_000.0, c=None):
        return derive_signals(p, buffer_s, goodput_bps, playback_bps, c or constants)
    return _make


def make_breakdown(score, *, o=0.2, pen_loss=0.0, z=3.0, t_blk=0.05, feasible=True):
    """Breakdown with a chosen score; fields the selector does not read are zeroed."""
    return ScoreBreakdown(
        p_sym=0, t_sym=1, o=o, b_blk=0,
        z=z, z_tgt=0.0, pen_loss=pen_loss,
        o_free=0.0, o_ex=0.0, pen_over=0.0,
        t_blk=t_blk, pen_blk=0.0,
        w_loss=0.0, w_over=0.0, w_blk=0.0,
        score=score, feasible=feasible,
    )


def make_eval(n, s, r, score, **kw):
    return Evaluation(candidate=CandidateConfig(n=n, s=s, r=r), breakdown=make_breakdown(score, **kw))
