"""CBT practice: timed multiple-choice exam attempts with scoring and review."""
