raise RuntimeError('module initialisation failed')


class Never:
    pass
