"""trainsim simulates a train unloading dock whose crews hog out when they reach their legal work hours. Current subpackage includes des (scheduler, processes, pulse events, facilities), stats (tables and confidence intervals) and the dock model.
"""
from trainsim.des import *
from trainsim.stats import ConfidenceInterval, HogoutHistogram, StatTable
from trainsim.config import SimConfig
from trainsim.errors import *
from trainsim.log_cfg import log_config, logger
from trainsim.runner import run

__version__ = "1.0.0"
