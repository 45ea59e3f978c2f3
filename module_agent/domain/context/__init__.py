# Prompt context for each provider call

# +------------------------------+
# |        System prompt         |
# |------------------------------|
# | Persona + today's date       |
# | Tool usage rules             |
# | User's modules and schemas   |
# | Current screen (optional)    |
# +------------------------------+
#         |
#         v
#   [history window + tool loop]
