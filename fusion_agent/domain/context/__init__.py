# This package assembles the per-request context

# +---------------------+   +---------------------+   +---------------------+
# |   Session memory    |   |   Document index    |   |      Plugins        |
# |---------------------|   |---------------------|   |---------------------|
# | Last N messages     |   | Ranked chunks       |   | Math, weather, ...  |
# | Bounded per session |   | Score >= threshold  |   | Failure-isolated    |
# +---------------------+   +---------------------+   +---------------------+
#            \                        |                         /
#             \                       |                        /
#              v                      v                       v
#            +-----------------------------------------------+
#            |                 Prompt                         |
#            |-----------------------------------------------|
#            | Memory | Documents | Plugin results | Message  |
#            | Fixed instruction block                        |
#            +-----------------------------------------------+
#                                 |
#                                 v
#                          [Language model]
