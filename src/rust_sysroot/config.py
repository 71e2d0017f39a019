"""Default configuration settings for rust-sysroot."""

DEFAULT_CONFIG = {
	# Commit history resolution
	"history": {
		# Where to read commits from: 'git' (local checkout) or 'github' (remote API)
		"strategy": "git",
		# Path to a local rust-lang/rust checkout, falls back to $RUST_SRC_REPO
		"repo_path": None,
		# Author name of the integration bot
		"bot_author": "bors",
		# GitHub API settings
		"api_url": "https://api.github.com",
		"repository": "rust-lang/rust",
		"per_page": 100,
		# API token, falls back to $GH_API_TOKEN
		"token": None,
		"timeout": 30.0,
	},
	# Sysroot download and cache settings
	"sysroot": {
		# Directory holding downloaded archives and extracted sysroots
		"cache_dir": "cache",
		# Mirror url templates, None uses the built-in list
		"mirrors": None,
		"timeout": 300.0,
	},
	# Default bisection boundaries
	"bisect": {
		"start": None,
		"end": "master",
	},
}
