"""Post sources: RSS/Atom feeds, subreddits, a Telegram collector and a planning script."""