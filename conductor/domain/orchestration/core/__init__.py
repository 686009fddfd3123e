# Agent loop and the decision contract; import from the submodules directly.
