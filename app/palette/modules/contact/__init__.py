"""Contact form: public submissions, reviewed and pruned by admins."""
