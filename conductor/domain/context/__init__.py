# Context engineering for the agent loop

# +---------------------+       +---------------------+
# |      Memory         |       |      Run state      |
# |---------------------|       |---------------------|
# | short-term (TTL)    |       | iteration           |
# | long-term (search)  |       | prior attempts      |
# | episodic (ordered)  |       | working memory      |
# +---------------------+       +---------------------+
#            \                         /
#             \                       /
#              v                     v
#        +-----------------------------------+
#        |         DecisionRequest           |
#        |-----------------------------------|
#        | task, tool catalog                |
#        | memory context (recall)           |
#        | prior attempts, loop notes        |
#        +-----------------------------------+
#                        |
#                        v
#              [decision capability]
