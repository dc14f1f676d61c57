"""
Speaker Embeddings and Clustering
---------------------------------
Embeds audio segments and groups them into a bounded set of speakers.
"""
