from agents.base import BaseAgent
from agents.code_guardian import PhantomCodeGuardian
from agents.data_specter import DataSpecter
from agents.treasury_wraith import TreasuryWraith
from agents.equity_phantom import EquityPhantom
from agents.pitch_poltergeist import PitchPoltergeist
from agents.shadow_scout import ShadowScout
from agents.news_banshee import NewsBanshee
from agents.investor_ghoul import InvestorGhoul

__all__ = [
    "BaseAgent",
    "PhantomCodeGuardian",
    "DataSpecter",
    "TreasuryWraith",
    "EquityPhantom",
    "PitchPoltergeist",
    "ShadowScout",
    "NewsBanshee",
    "InvestorGhoul",
]
