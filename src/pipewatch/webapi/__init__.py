"""HTTP API for evaluation, test notifications, history and provider browsing."""
