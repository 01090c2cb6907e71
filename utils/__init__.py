# Utility modules for the SuiSage orchestration service
from utils.config import get_env_var
