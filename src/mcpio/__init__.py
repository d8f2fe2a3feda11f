"""mcpio - bridge line-oriented server processes through named pipes and log files."""
